"""
Roomseal - Global Constants and Configuration Values

This module defines all constants used throughout the Roomseal engine.
All magic numbers and configuration defaults are centralized here.
"""

# Version Information
VERSION = "1.0.0"
APP_NAME = "Roomseal"

# Cryptography Constants
KEY_SIZE = 32  # 256 bits for AES-256-GCM room keys
NONCE_SIZE = 12  # 96 bits for AES-GCM
TAG_SIZE = 16  # AES-GCM authentication tag
PUBLIC_KEY_SIZE = 65  # Uncompressed SEC1 P-256 point (0x04 || X || Y)
PUBLIC_KEY_PREFIX = b"\x04"

# Room Key Derivation
ROOM_KEY_INFO = b"roomseal-room-key-v1"
ROOM_KEY_SEPARATOR = b"|"
PAIRWISE_KEY_INFO = b"roomseal-pairwise-key-v1"

# Fingerprints
FINGERPRINT_BYTES = 16  # SHA-256 digest truncated to 128 bits
FINGERPRINT_GROUP_SIZE = 4  # Hex characters per displayed group

# File Encryption
FILE_KEY_INFO = b"roomseal-file-key-v1"
FILE_CHUNK_SIZE = 64 * 1024  # 64 KB chunks
MIN_FILE_CHUNK_SIZE = 1024
MAX_FILE_SIZE = 100 * 1024 * 1024  # 100 MB
FILE_CHUNK_AAD = b"roomseal-file-chunk"
FILE_METADATA_AAD = b"roomseal-file-metadata"
FILE_METADATA_NONCE = b"\xff" * NONCE_SIZE  # Never produced by the chunk counter
FILE_FORMAT_VERSION = 1

# Room Key Retention
DEFAULT_RETAIN_EPOCHS = 0  # Superseded keys are discarded

# Message Rendering
DECRYPTION_PLACEHOLDER = "Could not decrypt"

# File Paths
DEFAULT_DATA_DIR = "~/.roomseal"
CONFIG_FILENAME = "config.toml"

# Logging Configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
