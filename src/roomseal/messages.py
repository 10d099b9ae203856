"""
Roomseal - Room message variants.

Messages in a room are one of three shapes:

- SystemNotice: plain local or server notice ("bob joined"), never encrypted
- EncryptedText: a text message sealed under the room key
- EncryptedFileMessage: an encrypted caption plus a reference to an
  encrypted blob, with the file nonce and sealed metadata

Only the last two involve the cipher modules. parse_message() dispatches on
the "type" field of the wire dictionary.
"""

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from .errors import DecryptionFailure, ErrorCode, RoomsealError
from .file_cipher import EncryptedFile
from .message_cipher import EncryptedMessage, decrypt_message
from .room_key import RoomKey


class MessageType(Enum):
    """Wire value of the message "type" field."""

    SYSTEM = "system"
    TEXT = "text"
    FILE = "file"


@dataclass
class SystemNotice:
    """Unencrypted notice shown inline in the room."""

    text: str
    message_id: Optional[str] = None
    timestamp: Optional[str] = None
    type: MessageType = field(default=MessageType.SYSTEM, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "id": self.message_id,
            "timestamp": self.timestamp,
            "text": self.text,
        }


@dataclass
class EncryptedText:
    """Text message whose body is an EncryptedMessage."""

    envelope: EncryptedMessage
    sender: Optional[str] = None
    message_id: Optional[str] = None
    timestamp: Optional[str] = None
    type: MessageType = field(default=MessageType.TEXT, init=False)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type.value,
            "id": self.message_id,
            "sender": self.sender,
            "timestamp": self.timestamp,
        }
        data.update(self.envelope.to_dict())
        return data


@dataclass
class EncryptedFileMessage:
    """File message: encrypted caption plus a reference to the sealed blob.

    The blob itself travels separately through the file-retrieval channel;
    only its nonce, sealed metadata and size are part of the message record.
    """

    caption: EncryptedMessage
    url: str
    file_nonce: bytes
    file_metadata: bytes = field(repr=False)
    file_size: int
    sender: Optional[str] = None
    message_id: Optional[str] = None
    timestamp: Optional[str] = None
    type: MessageType = field(default=MessageType.FILE, init=False)

    def envelope(self, ciphertext: bytes) -> EncryptedFile:
        """Combine the record with the downloaded blob for decrypt_file()."""
        return EncryptedFile(ciphertext=bytes(ciphertext), nonce=self.file_nonce, metadata=self.file_metadata)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type.value,
            "id": self.message_id,
            "sender": self.sender,
            "timestamp": self.timestamp,
            "attachment": {
                "url": self.url,
                "nonce": base64.b64encode(self.file_nonce).decode("utf-8"),
                "metadata": base64.b64encode(self.file_metadata).decode("utf-8"),
                "size": self.file_size,
            },
        }
        data.update(self.caption.to_dict())
        return data


RoomMessage = Union[SystemNotice, EncryptedText, EncryptedFileMessage]


def parse_message(data: Dict[str, Any]) -> RoomMessage:
    """
    Build a message variant from its wire dictionary.

    Raises:
        RoomsealError: If the type is unknown or required fields are missing
    """
    if not isinstance(data, dict):
        raise RoomsealError(ErrorCode.E002_INVALID_ARGUMENT, "Message must be a dictionary")

    try:
        message_type = MessageType(data.get("type"))
    except ValueError as e:
        raise RoomsealError(
            ErrorCode.E002_INVALID_ARGUMENT,
            f"Unknown message type: {data.get('type')!r}",
        ) from e

    common = {"message_id": data.get("id"), "timestamp": data.get("timestamp")}

    if message_type is MessageType.SYSTEM:
        return SystemNotice(text=str(data.get("text", "")), **common)

    envelope = EncryptedMessage.from_dict(data)
    if message_type is MessageType.TEXT:
        return EncryptedText(envelope=envelope, sender=data.get("sender"), **common)

    attachment = data.get("attachment")
    try:
        return EncryptedFileMessage(
            caption=envelope,
            url=str(attachment["url"]),
            file_nonce=base64.b64decode(attachment["nonce"], validate=True),
            file_metadata=base64.b64decode(attachment["metadata"], validate=True),
            file_size=int(attachment["size"]),
            sender=data.get("sender"),
            **common,
        )
    except (KeyError, TypeError, ValueError, binascii.Error) as e:
        raise RoomsealError(
            ErrorCode.E002_INVALID_ARGUMENT,
            f"Malformed file attachment: {e}",
        ) from e


def open_message(message: RoomMessage, key: Optional[Union[RoomKey, bytes]]) -> str:
    """
    Text to display for a message.

    Encrypted bodies that do not verify (or arrive before any room key is
    known) render as the "Could not decrypt" placeholder.
    """
    if isinstance(message, SystemNotice):
        return message.text

    if key is None:
        return DecryptionFailure.placeholder

    envelope = message.envelope if isinstance(message, EncryptedText) else message.caption
    text = decrypt_message(envelope.ciphertext, envelope.nonce, key)
    if isinstance(text, DecryptionFailure):
        return text.placeholder
    return text
