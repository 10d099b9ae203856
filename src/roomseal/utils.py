"""
Roomseal - Utility functions.

Provides formatting and filename helpers used by the file cipher and CLI.
"""

import base64
import logging
import re

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def format_file_size(size: int) -> str:
    """
    Format a byte count for display (e.g. '1.5 MB').

    Args:
        size: Size in bytes

    Returns:
        Human-readable size with at most one decimal
    """
    if size <= 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1

    text = f"{value:.1f}".rstrip("0").rstrip(".")
    return f"{text} {units[unit]}"


def sanitize_filename(filename: str) -> str:
    """
    Sanitize a filename by removing invalid characters.

    Decrypted filenames come from peers, so path separators and control
    characters are replaced before the name touches the filesystem.

    Args:
        filename: Filename to sanitize

    Returns:
        Sanitized filename
    """
    # Remove invalid characters
    invalid_chars = '<>:"/\\|?*'
    for char in invalid_chars:
        filename = filename.replace(char, "_")
    filename = _CONTROL_CHARS.sub("_", filename)

    # Remove leading/trailing spaces and dots
    filename = filename.strip(". ")

    # Ensure not empty
    if not filename:
        filename = "unnamed"

    return filename[:255]


def truncate_string(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate a string to a maximum length.

    Args:
        text: String to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text
    return text[: max_length - len(suffix)] + suffix


def decode_bytes(value) -> bytes:
    """
    Accept raw bytes or base64 text for ciphertext, nonce and metadata fields.

    Raises:
        TypeError: If the value is neither bytes-like nor text
        binascii.Error: If text is not valid base64
    """
    if isinstance(value, str):
        return base64.b64decode(value, validate=True)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"Expected bytes or base64 text, got {type(value).__name__}")
