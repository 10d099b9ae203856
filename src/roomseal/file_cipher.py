"""
Roomseal - File encryption.

Whole-file in, whole-file out, chunked internally:

- A random 96-bit file nonce salts an HKDF-SHA256 derivation of a per-file
  subkey from the room key, so nonces below never repeat across files.
- Content is split into chunks (64 KB by default). Chunk i is sealed with
  AES-256-GCM under the subkey using nonce = i (11 bytes, big endian) ||
  final flag (1 byte). Truncation, reordering or swapping chunks between
  files fails authentication.
- Metadata (filename, MIME type, size, chunk size) is sealed under the same
  subkey with a reserved all-0xFF nonce that the counter never produces.

Storage sees only the ciphertext length, which is the file size plus 16
bytes per chunk.
"""

import asyncio
import base64
import binascii
import functools
import json
import logging
import mimetypes
import os
from concurrent.futures import Executor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

import aiofiles
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .constants import (
    FILE_CHUNK_AAD,
    FILE_CHUNK_SIZE,
    FILE_FORMAT_VERSION,
    FILE_KEY_INFO,
    FILE_METADATA_AAD,
    FILE_METADATA_NONCE,
    KEY_SIZE,
    MAX_FILE_SIZE,
    MIN_FILE_CHUNK_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
)
from .errors import DecryptionFailure, ErrorCode, FileCipherError, RoomsealError
from .room_key import RoomKey, resolve_key
from .utils import decode_bytes, format_file_size, sanitize_filename

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"

BytesOrText = Union[bytes, bytearray, memoryview, str]


@dataclass(frozen=True)
class EncryptedFile:
    """Envelope for an encrypted file.

    Attributes:
        ciphertext: Sealed chunks, delivered as an opaque blob
        nonce: 12-byte file nonce
        metadata: Sealed filename, MIME type, size and chunk size
    """

    ciphertext: bytes = field(repr=False)
    nonce: bytes
    metadata: bytes = field(repr=False)

    @property
    def size(self) -> int:
        """Ciphertext length, the only size information storage sees."""
        return len(self.ciphertext)

    def to_dict(self) -> Dict[str, Any]:
        """Fields carried in the message record that references the blob."""
        return {
            "nonce": base64.b64encode(self.nonce).decode("utf-8"),
            "metadata": base64.b64encode(self.metadata).decode("utf-8"),
            "size": self.size,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any], ciphertext: bytes) -> "EncryptedFile":
        """
        Rebuild the envelope from a message record and the downloaded blob.

        Raises:
            RoomsealError: If a field is missing or not valid base64
        """
        try:
            return EncryptedFile(
                ciphertext=bytes(ciphertext),
                nonce=base64.b64decode(data["nonce"], validate=True),
                metadata=base64.b64decode(data["metadata"], validate=True),
            )
        except (KeyError, TypeError, binascii.Error, ValueError) as e:
            raise RoomsealError(
                ErrorCode.E002_INVALID_ARGUMENT,
                f"Malformed file envelope: {e}",
            ) from e


@dataclass(frozen=True)
class DecryptedFile:
    """Result of a successful file decryption."""

    data: bytes = field(repr=False)
    filename: str
    mime_type: str
    size: int

    @property
    def safe_filename(self) -> str:
        """Filename with path separators and control characters removed."""
        return sanitize_filename(self.filename)


def _derive_file_key(key: bytes, file_nonce: bytes) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=file_nonce,
        info=FILE_KEY_INFO,
    )
    return hkdf.derive(key)


def _chunk_nonce(index: int, final: bool) -> bytes:
    return index.to_bytes(NONCE_SIZE - 1, "big") + (b"\x01" if final else b"\x00")


def _iter_chunks(data: bytes, chunk_size: int) -> Iterator[bytes]:
    """Yield plaintext chunks; an empty file is one empty final chunk."""
    if not data:
        yield b""
        return
    for offset in range(0, len(data), chunk_size):
        yield data[offset : offset + chunk_size]


def encrypt_file(
    file_bytes: bytes,
    filename: str,
    mime_type: str,
    key: Union[RoomKey, bytes],
    chunk_size: Optional[int] = None,
    max_file_size: int = MAX_FILE_SIZE,
) -> EncryptedFile:
    """
    Encrypt file content and metadata under the room key.

    Args:
        file_bytes: Full file content
        filename: Original filename
        mime_type: MIME type (empty means application/octet-stream)
        key: RoomKey or 32 raw key bytes
        chunk_size: Plaintext bytes per sealed chunk
        max_file_size: Largest accepted file in bytes

    Returns:
        EncryptedFile envelope

    Raises:
        FileCipherError: If the file is too large or arguments are invalid
        MalformedKeyInputError: If the key is not 32 bytes
    """
    raw_key = resolve_key(key)

    if not isinstance(file_bytes, (bytes, bytearray, memoryview)):
        raise FileCipherError(ErrorCode.E002_INVALID_ARGUMENT, "File content must be bytes")
    if not isinstance(filename, str) or not filename:
        raise FileCipherError(ErrorCode.E002_INVALID_ARGUMENT, "Filename must be a non-empty string")
    if mime_type is not None and not isinstance(mime_type, str):
        raise FileCipherError(ErrorCode.E002_INVALID_ARGUMENT, "MIME type must be a string")

    data = bytes(file_bytes)
    size = len(data)
    if size > max_file_size:
        raise FileCipherError(
            ErrorCode.E601_FILE_TOO_LARGE,
            f"File too large: {size} > {max_file_size}",
            {"size": size, "max_size": max_file_size},
        )

    if chunk_size is None:
        chunk_size = FILE_CHUNK_SIZE
    if not isinstance(chunk_size, int) or isinstance(chunk_size, bool) or chunk_size < MIN_FILE_CHUNK_SIZE:
        raise FileCipherError(
            ErrorCode.E002_INVALID_ARGUMENT,
            f"Chunk size must be at least {MIN_FILE_CHUNK_SIZE} bytes",
            {"chunk_size": chunk_size},
        )

    file_nonce = os.urandom(NONCE_SIZE)
    aesgcm = AESGCM(_derive_file_key(raw_key, file_nonce))

    chunks = list(_iter_chunks(data, chunk_size))
    last = len(chunks) - 1
    sealed = bytearray()
    for index, chunk in enumerate(chunks):
        sealed += aesgcm.encrypt(_chunk_nonce(index, index == last), chunk, FILE_CHUNK_AAD)

    metadata = {
        "v": FILE_FORMAT_VERSION,
        "filename": filename,
        "mime_type": mime_type or DEFAULT_MIME_TYPE,
        "size": size,
        "chunk_size": chunk_size,
    }
    sealed_metadata = aesgcm.encrypt(
        FILE_METADATA_NONCE,
        json.dumps(metadata, separators=(",", ":")).encode("utf-8"),
        FILE_METADATA_AAD,
    )

    logger.info(f"Encrypted file: {format_file_size(size)} in {len(chunks)} chunk(s)")
    return EncryptedFile(ciphertext=bytes(sealed), nonce=file_nonce, metadata=sealed_metadata)


def _open_metadata(aesgcm: AESGCM, sealed_metadata: bytes) -> Dict[str, Any]:
    plaintext = aesgcm.decrypt(FILE_METADATA_NONCE, sealed_metadata, FILE_METADATA_AAD)
    metadata = json.loads(plaintext.decode("utf-8"))
    if not isinstance(metadata, dict):
        raise ValueError("metadata is not an object")
    if metadata.get("v") != FILE_FORMAT_VERSION:
        raise ValueError(f"unsupported file format version {metadata.get('v')!r}")
    for name, kind in (("filename", str), ("mime_type", str), ("size", int), ("chunk_size", int)):
        if not isinstance(metadata.get(name), kind):
            raise ValueError(f"metadata field {name!r} missing or invalid")
    if metadata["chunk_size"] < MIN_FILE_CHUNK_SIZE or metadata["size"] < 0:
        raise ValueError("metadata sizes out of range")
    return metadata


def decrypt_file(
    ciphertext: BytesOrText,
    nonce: BytesOrText,
    metadata: BytesOrText,
    key: Union[RoomKey, bytes],
) -> Union[DecryptedFile, DecryptionFailure]:
    """
    Decrypt and authenticate a file and its metadata.

    Args:
        ciphertext: Sealed chunks (bytes, or base64 text)
        nonce: File nonce (bytes or base64 text)
        metadata: Sealed metadata (bytes or base64 text)
        key: RoomKey or 32 raw key bytes

    Returns:
        DecryptedFile with byte-identical content, or DecryptionFailure

    Raises:
        MalformedKeyInputError: If the key itself is malformed
    """
    raw_key = resolve_key(key)
    details = {"epoch": key.epoch, "room_id": key.room_id} if isinstance(key, RoomKey) else {}

    try:
        sealed = decode_bytes(ciphertext)
        file_nonce = decode_bytes(nonce)
        sealed_metadata = decode_bytes(metadata)
    except (TypeError, binascii.Error, ValueError) as e:
        return _failure(f"Malformed file envelope: {e}", details)

    if len(file_nonce) != NONCE_SIZE:
        return _failure(f"Nonce must be {NONCE_SIZE} bytes, got {len(file_nonce)}", details)

    aesgcm = AESGCM(_derive_file_key(raw_key, file_nonce))

    try:
        meta = _open_metadata(aesgcm, sealed_metadata)
    except InvalidTag:
        return _failure("File metadata authentication failed", details)
    except (ValueError, UnicodeDecodeError) as e:
        return _failure(f"File metadata is malformed: {e}", details)

    sealed_chunk = meta["chunk_size"] + TAG_SIZE
    total = len(sealed)
    if total < TAG_SIZE:
        return _failure("Ciphertext shorter than authentication tag", details)

    offsets = list(range(0, total, sealed_chunk))
    last = len(offsets) - 1
    plaintext = bytearray()
    for index, offset in enumerate(offsets):
        piece = sealed[offset : offset + sealed_chunk]
        if len(piece) < TAG_SIZE:
            return _failure(f"Chunk {index} is truncated", details)
        try:
            plaintext += aesgcm.decrypt(_chunk_nonce(index, index == last), piece, FILE_CHUNK_AAD)
        except InvalidTag:
            return _failure(f"Chunk {index} authentication failed", details)

    if len(plaintext) != meta["size"]:
        return _failure(
            f"Decrypted size {len(plaintext)} does not match recorded size {meta['size']}", details
        )

    logger.debug(f"Decrypted file: {format_file_size(meta['size'])} in {len(offsets)} chunk(s)")
    return DecryptedFile(
        data=bytes(plaintext),
        filename=meta["filename"],
        mime_type=meta["mime_type"],
        size=meta["size"],
    )


def _failure(reason: str, details: Dict[str, Any]) -> DecryptionFailure:
    logger.warning(f"File decryption failed: {reason}")
    return DecryptionFailure(reason=reason, details=dict(details))


def guess_mime_type(filename: str) -> str:
    """Guess a MIME type from a filename, defaulting to octet-stream."""
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or DEFAULT_MIME_TYPE


async def encrypt_path(
    path: Path,
    key: Union[RoomKey, bytes],
    mime_type: Optional[str] = None,
    chunk_size: Optional[int] = None,
    max_file_size: int = MAX_FILE_SIZE,
    executor: Optional[Executor] = None,
) -> EncryptedFile:
    """
    Read a file from disk and encrypt it.

    The read is asynchronous and the encryption runs in an executor, so a
    large file never holds up the event loop.

    Args:
        path: File to encrypt
        key: RoomKey or 32 raw key bytes
        mime_type: MIME type, guessed from the filename when omitted
        chunk_size: Plaintext bytes per sealed chunk
        max_file_size: Largest accepted file in bytes
        executor: Executor for the encryption (default executor when None)

    Raises:
        FileCipherError: If the file is missing or too large
    """
    path = Path(path)
    if not path.is_file():
        raise FileCipherError(ErrorCode.E003_FILE_NOT_FOUND, f"File not found: {path}")

    size = path.stat().st_size
    if size > max_file_size:
        raise FileCipherError(
            ErrorCode.E601_FILE_TOO_LARGE,
            f"File too large: {size} > {max_file_size}",
            {"size": size, "max_size": max_file_size},
        )

    async with aiofiles.open(path, "rb") as f:
        data = await f.read()

    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        executor,
        functools.partial(
            encrypt_file,
            data,
            path.name,
            mime_type or guess_mime_type(path.name),
            key,
            chunk_size=chunk_size,
            max_file_size=max_file_size,
        ),
    )


async def write_decrypted(decrypted: DecryptedFile, directory: Path) -> Path:
    """
    Write a decrypted file into a directory under its sanitized name.

    Existing files are never overwritten; a numeric suffix is added instead.

    Returns:
        Path of the written file
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    target = directory / decrypted.safe_filename
    stem, suffix = target.stem, target.suffix
    counter = 0
    while True:
        # Exclusive create: a name taken by another writer moves on to the next suffix
        try:
            async with aiofiles.open(target, "xb") as f:
                await f.write(decrypted.data)
            break
        except FileExistsError:
            counter += 1
            target = directory / f"{stem} ({counter}){suffix}"

    logger.info(f"Wrote decrypted file ({format_file_size(decrypted.size)})")
    return target
