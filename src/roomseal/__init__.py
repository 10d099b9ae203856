"""
Roomseal - End-to-end encryption engine for room-based messaging

Identity key pairs, room key derivation from member public keys,
authenticated text and file encryption, and public key fingerprints.

License: MIT
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .config import Config
from .constants import APP_NAME, VERSION
from .errors import (
    ConfigError,
    CryptoUnavailableError,
    DecryptionFailure,
    ErrorCode,
    FileCipherError,
    InvalidMembershipError,
    MalformedKeyInputError,
    RoomsealError,
    is_failure,
)
from .file_cipher import DecryptedFile, EncryptedFile, decrypt_file, encrypt_file
from .fingerprint import fingerprints_match, generate_fingerprint
from .identity import IdentityKeyring, encode_public_key, load_public_key
from .message_cipher import EncryptedMessage, decrypt_message, encrypt_message
from .messages import EncryptedFileMessage, EncryptedText, SystemNotice, open_message, parse_message
from .room_key import RoomKey, RoomKeyStore, derive_room_key
from .session import CryptoSession

__all__ = [
    "APP_NAME",
    "VERSION",
    "Config",
    "ConfigError",
    "CryptoSession",
    "CryptoUnavailableError",
    "DecryptedFile",
    "DecryptionFailure",
    "EncryptedFile",
    "EncryptedFileMessage",
    "EncryptedMessage",
    "EncryptedText",
    "ErrorCode",
    "FileCipherError",
    "IdentityKeyring",
    "InvalidMembershipError",
    "MalformedKeyInputError",
    "RoomKey",
    "RoomKeyStore",
    "RoomsealError",
    "SystemNotice",
    "decrypt_file",
    "decrypt_message",
    "derive_room_key",
    "encode_public_key",
    "encrypt_file",
    "encrypt_message",
    "fingerprints_match",
    "generate_fingerprint",
    "is_failure",
    "load_public_key",
    "open_message",
    "parse_message",
    "__license__",
    "__version__",
]
