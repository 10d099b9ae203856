"""
Roomseal - Text message encryption.

AES-256-GCM under the room key with a fresh 96-bit random nonce per call.
Encrypting the same text twice yields different ciphertexts; both decrypt.

Decryption never raises for bad input. Tag mismatch, a wrong key, a
corrupted nonce or malformed base64 all come back as a DecryptionFailure
so message rendering can show a placeholder and move on.
"""

import base64
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import NONCE_SIZE, TAG_SIZE
from .errors import DecryptionFailure, ErrorCode, RoomsealError
from .room_key import RoomKey, resolve_key
from .utils import decode_bytes

logger = logging.getLogger(__name__)

BytesOrText = Union[bytes, bytearray, memoryview, str]


@dataclass(frozen=True)
class EncryptedMessage:
    """Envelope for an encrypted text message.

    Attributes:
        ciphertext: AES-GCM ciphertext with appended 16-byte tag
        nonce: 12-byte nonce used for this message only
    """

    ciphertext: bytes
    nonce: bytes

    def to_dict(self) -> Dict[str, str]:
        """Wire form: base64 ciphertext and nonce."""
        return {
            "ciphertext": base64.b64encode(self.ciphertext).decode("utf-8"),
            "nonce": base64.b64encode(self.nonce).decode("utf-8"),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "EncryptedMessage":
        """
        Parse the wire form.

        Raises:
            RoomsealError: If a field is missing or not valid base64
        """
        try:
            return EncryptedMessage(
                ciphertext=base64.b64decode(data["ciphertext"], validate=True),
                nonce=base64.b64decode(data["nonce"], validate=True),
            )
        except (KeyError, TypeError, binascii.Error, ValueError) as e:
            raise RoomsealError(
                ErrorCode.E002_INVALID_ARGUMENT,
                f"Malformed message envelope: {e}",
            ) from e


def encrypt_message(plaintext: str, key: Union[RoomKey, bytes]) -> EncryptedMessage:
    """
    Encrypt a text message under the room key.

    Args:
        plaintext: Message text
        key: RoomKey or 32 raw key bytes

    Returns:
        EncryptedMessage with ciphertext and fresh nonce

    Raises:
        MalformedKeyInputError: If the key is not 32 bytes
    """
    if not isinstance(plaintext, str):
        raise TypeError("plaintext must be str")

    aesgcm = AESGCM(resolve_key(key))
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
    return EncryptedMessage(ciphertext=ciphertext, nonce=nonce)


def decrypt_message(
    ciphertext: BytesOrText, nonce: BytesOrText, key: Union[RoomKey, bytes]
) -> Union[str, DecryptionFailure]:
    """
    Decrypt and authenticate a text message.

    Args:
        ciphertext: Ciphertext bytes or base64 text
        nonce: Nonce bytes or base64 text
        key: RoomKey or 32 raw key bytes

    Returns:
        The plaintext, or a DecryptionFailure if anything does not verify

    Raises:
        MalformedKeyInputError: If the key itself is malformed (a caller bug,
            not a per-message condition)
    """
    raw_key = resolve_key(key)
    details = {"epoch": key.epoch, "room_id": key.room_id} if isinstance(key, RoomKey) else {}

    try:
        ct = decode_bytes(ciphertext)
        iv = decode_bytes(nonce)
    except (TypeError, binascii.Error, ValueError) as e:
        return _failure(f"Malformed envelope: {e}", details)

    if len(iv) != NONCE_SIZE:
        return _failure(f"Nonce must be {NONCE_SIZE} bytes, got {len(iv)}", details)
    if len(ct) < TAG_SIZE:
        return _failure("Ciphertext shorter than authentication tag", details)

    try:
        plaintext = AESGCM(raw_key).decrypt(iv, ct, None)
    except InvalidTag:
        return _failure("Authentication tag mismatch", details)

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError:
        return _failure("Plaintext is not valid UTF-8", details)


def _failure(reason: str, details: Dict[str, Any]) -> DecryptionFailure:
    logger.warning(f"Message decryption failed: {reason}")
    return DecryptionFailure(reason=reason, details=dict(details))
