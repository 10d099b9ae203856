"""
Roomseal - Custom Exception Classes and Error Codes

This module defines all custom exceptions and error codes used throughout
the Roomseal engine. Each error has a unique code for logging and debugging.

Construction-time problems (no crypto backend, bad membership, bad key
bytes) are raised. Per-message decryption problems are not exceptions: they
are returned as DecryptionFailure values so a renderer can fall back to a
placeholder instead of crashing the session.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .constants import DECRYPTION_PLACEHOLDER


class ErrorCode(Enum):
    """Enumeration of all Roomseal error codes."""

    # General Errors (E001-E099)
    E001_UNKNOWN_ERROR = "E001"
    E002_INVALID_ARGUMENT = "E002"
    E003_FILE_NOT_FOUND = "E003"

    # Crypto Errors (E100-E199)
    E100_CRYPTO_UNAVAILABLE = "E100"
    E101_ENCRYPTION_FAILED = "E101"
    E102_DECRYPTION_FAILED = "E102"
    E103_MALFORMED_KEY = "E103"
    E104_KEY_GENERATION_FAILED = "E104"
    E108_INVALID_MEMBERSHIP = "E108"
    E109_ROOM_KEY_MISSING = "E109"

    # File Errors (E600-E699)
    E600_FILE_CIPHER_ERROR = "E600"
    E601_FILE_TOO_LARGE = "E601"
    E606_INVALID_CHUNK = "E606"

    # Config Errors (E700-E799)
    E700_CONFIG_ERROR = "E700"
    E701_CONFIG_LOAD_FAILED = "E701"
    E702_CONFIG_SAVE_FAILED = "E702"
    E703_INVALID_CONFIG = "E703"
    E704_CONFIG_PARSE_ERROR = "E704"


class RoomsealError(Exception):
    """Base exception class for all Roomseal errors.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        details: Additional error details (optional)
    """

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {"code": self.code.value, "message": self.message, "details": self.details}


class CryptoUnavailableError(RoomsealError):
    """Raised when the platform cannot provide the required primitives.

    Fatal for the whole session: no crypto-dependent feature may proceed.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E100_CRYPTO_UNAVAILABLE,
        message: str = "Cryptographic primitives are unavailable",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class InvalidMembershipError(RoomsealError):
    """Raised when a room key is requested for an empty or malformed member set."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E108_INVALID_MEMBERSHIP,
        message: str = "Invalid room membership",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class MalformedKeyInputError(RoomsealError):
    """Raised when public key or room key bytes have the wrong length or format."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E103_MALFORMED_KEY,
        message: str = "Malformed key input",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class FileCipherError(RoomsealError):
    """Raised when a file cannot be sealed (too large, bad arguments)."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E600_FILE_CIPHER_ERROR,
        message: str = "File encryption failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ConfigError(RoomsealError):
    """Exception raised for configuration failures.

    This includes loading, parsing, and validating configuration files.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E700_CONFIG_ERROR,
        message: str = "Configuration operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


@dataclass(frozen=True)
class DecryptionFailure:
    """Result value returned when an authenticated decryption does not verify.

    Covers tag mismatch, wrong key, corrupted ciphertext or nonce, and
    malformed envelopes. Evaluates as False so callers can write
    ``text = decrypt_message(...) or placeholder``. Retrying with the same
    inputs can never succeed.

    Attributes:
        reason: Short description for logs (never contains plaintext)
        code: Error code, always a decryption code
        details: Extra non-secret context (room id, epoch, sizes)
    """

    reason: str
    code: ErrorCode = ErrorCode.E102_DECRYPTION_FAILED
    details: Dict[str, Any] = field(default_factory=dict)

    placeholder = DECRYPTION_PLACEHOLDER

    def __bool__(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        """Convert failure to dictionary for serialization."""
        return {"code": self.code.value, "message": self.reason, "details": self.details}


def is_failure(result: Any) -> bool:
    """Return True if an operation result is a DecryptionFailure."""
    return isinstance(result, DecryptionFailure)
