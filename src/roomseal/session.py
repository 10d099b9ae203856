"""
Roomseal - Per-device crypto session.

CryptoSession is the explicit context object a client passes around instead
of a global: it owns one IdentityKeyring and one RoomKeyStore. Its methods
are coroutines that run the synchronous primitives in an executor, so a
large file in one room never blocks traffic in another.

Usage:
    session = CryptoSession.from_config(Config())
    await session.initialize()
    signaling.register(username, session.public_key)

    await session.set_room_key("AB12C9", member_keys)
    envelope = await session.encrypt("AB12C9", "hello")
"""

import asyncio
import functools
import logging
from concurrent.futures import Executor
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar, Union

from .config import Config
from .constants import DEFAULT_RETAIN_EPOCHS, FILE_CHUNK_SIZE, MAX_FILE_SIZE
from .errors import CryptoUnavailableError, DecryptionFailure, ErrorCode
from .file_cipher import (
    DecryptedFile,
    EncryptedFile,
    decrypt_file,
    encrypt_file,
    encrypt_path,
)
from .fingerprint import generate_fingerprint
from .identity import IdentityKeyring, PublicKeyInput
from .message_cipher import EncryptedMessage, decrypt_message, encrypt_message
from .messages import RoomMessage, open_message
from .room_key import MemberKeys, RoomKey, RoomKeyStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CryptoSession:
    """Identity key pair plus current room keys for one device session."""

    def __init__(
        self,
        keyring: Optional[IdentityKeyring] = None,
        retain_epochs: int = DEFAULT_RETAIN_EPOCHS,
        chunk_size: int = FILE_CHUNK_SIZE,
        max_file_size: int = MAX_FILE_SIZE,
        executor: Optional[Executor] = None,
    ):
        self.keyring = keyring or IdentityKeyring()
        self.room_keys = RoomKeyStore(retain_epochs=retain_epochs)
        self.chunk_size = chunk_size
        self.max_file_size = max_file_size
        self._executor = executor

    @classmethod
    def from_config(cls, config: Config, **kwargs: Any) -> "CryptoSession":
        """Build a session from the [files] and [rooms] config sections."""
        return cls(
            retain_epochs=config.get("rooms", "retain_epochs", DEFAULT_RETAIN_EPOCHS),
            chunk_size=config.get("files", "chunk_size", FILE_CHUNK_SIZE),
            max_file_size=config.get("files", "max_file_size", MAX_FILE_SIZE),
            **kwargs,
        )

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args, **kwargs))

    def _require_ready(self) -> None:
        if not self.keyring.initialized:
            raise CryptoUnavailableError(
                ErrorCode.E100_CRYPTO_UNAVAILABLE,
                "Crypto session used before initialize()",
            )

    @property
    def ready(self) -> bool:
        return self.keyring.initialized

    async def initialize(self) -> None:
        """
        Generate the session's identity key pair.

        Raises:
            CryptoUnavailableError: If no secure crypto context exists; the
                caller must not start any crypto-dependent feature
        """
        await self._run(self.keyring.initialize)

    @property
    def public_key(self) -> str:
        """Own public key as base64 text for signaling messages."""
        return self.keyring.export_public_key_b64()

    async def fingerprint(self, public_key: Optional[PublicKeyInput] = None) -> str:
        """Fingerprint of a peer key, or of the session's own key when omitted."""
        if public_key is None:
            self._require_ready()
            return self.keyring.fingerprint()
        return await self._run(generate_fingerprint, public_key)

    async def set_room_key(self, room_id: str, member_keys: MemberKeys) -> RoomKey:
        """
        Install the key for a room's current membership snapshot.

        Called on room creation, join approval and every members update.

        Raises:
            InvalidMembershipError: If the room id or member set is invalid
            MalformedKeyInputError: If a member key is malformed
        """
        self._require_ready()
        return await self._run(self.room_keys.update, room_id, member_keys)

    def room_key(self, room_id: str) -> RoomKey:
        """Current key for a room (raises InvalidMembershipError if none)."""
        return self.room_keys.require(room_id)

    def leave_room(self, room_id: str) -> None:
        """Discard every key held for a room."""
        self.room_keys.close(room_id)

    async def encrypt(self, room_id: str, plaintext: str) -> EncryptedMessage:
        """Encrypt a text message under the room's current key."""
        self._require_ready()
        room_key = self.room_keys.require(room_id)
        return await self._run(encrypt_message, plaintext, room_key)

    async def decrypt(
        self, room_id: str, ciphertext: Union[bytes, str], nonce: Union[bytes, str]
    ) -> Union[str, DecryptionFailure]:
        """
        Decrypt a text message with the room's key.

        The current key is tried first, then any retained earlier epochs.
        A room with no key yields a DecryptionFailure, not an exception.
        """
        self._require_ready()
        keys = self.room_keys.keys_for(room_id)
        if not keys:
            return DecryptionFailure(
                reason=f"No room key for room {room_id}",
                code=ErrorCode.E109_ROOM_KEY_MISSING,
                details={"room_id": room_id},
            )

        result: Union[str, DecryptionFailure] = DecryptionFailure(reason="not attempted")
        for room_key in keys:
            result = await self._run(decrypt_message, ciphertext, nonce, room_key)
            if not isinstance(result, DecryptionFailure):
                return result
        return result

    async def encrypt_file(
        self, room_id: str, file_bytes: bytes, filename: str, mime_type: str
    ) -> EncryptedFile:
        """Encrypt a file under the room's current key."""
        self._require_ready()
        room_key = self.room_keys.require(room_id)
        return await self._run(
            encrypt_file,
            file_bytes,
            filename,
            mime_type,
            room_key,
            chunk_size=self.chunk_size,
            max_file_size=self.max_file_size,
        )

    async def encrypt_path(self, room_id: str, path: Path, mime_type: Optional[str] = None) -> EncryptedFile:
        """Read a file from disk and encrypt it under the room's current key."""
        self._require_ready()
        room_key = self.room_keys.require(room_id)
        return await encrypt_path(
            path,
            room_key,
            mime_type=mime_type,
            chunk_size=self.chunk_size,
            max_file_size=self.max_file_size,
            executor=self._executor,
        )

    async def decrypt_file(
        self,
        room_id: str,
        ciphertext: Union[bytes, str],
        nonce: Union[bytes, str],
        metadata: Union[bytes, str],
    ) -> Union[DecryptedFile, DecryptionFailure]:
        """Decrypt a file with the room's current key, then retained epochs."""
        self._require_ready()
        keys = self.room_keys.keys_for(room_id)
        if not keys:
            return DecryptionFailure(
                reason=f"No room key for room {room_id}",
                code=ErrorCode.E109_ROOM_KEY_MISSING,
                details={"room_id": room_id},
            )

        result: Union[DecryptedFile, DecryptionFailure] = DecryptionFailure(reason="not attempted")
        for room_key in keys:
            result = await self._run(decrypt_file, ciphertext, nonce, metadata, room_key)
            if not isinstance(result, DecryptionFailure):
                return result
        return result

    async def open_message(self, room_id: str, message: RoomMessage) -> str:
        """Display text for a room message, or the decryption placeholder."""
        self._require_ready()
        for room_key in self.room_keys.keys_for(room_id):
            text = await self._run(open_message, message, room_key)
            if text != DecryptionFailure.placeholder:
                return text
        return await self._run(open_message, message, None)
