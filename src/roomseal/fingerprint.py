"""
Roomseal - Public key fingerprints.

A fingerprint is a short, human-comparable digest of a public key. Two
people read their fingerprints to each other over a trusted channel (in
person, phone call) to confirm they hold the same key for a peer. There is
no certificate authority; this comparison is the only trust anchor.
"""

import hmac

from cryptography.hazmat.primitives import hashes

from .constants import FINGERPRINT_BYTES, FINGERPRINT_GROUP_SIZE
from .identity import PublicKeyInput, encode_public_key


def format_fingerprint(fingerprint: str) -> str:
    """
    Format a fingerprint for display with spaces every 4 characters.

    Args:
        fingerprint: Hex fingerprint string

    Returns:
        Formatted fingerprint
    """
    compact = normalize_fingerprint(fingerprint)
    return " ".join(
        compact[i : i + FINGERPRINT_GROUP_SIZE]
        for i in range(0, len(compact), FINGERPRINT_GROUP_SIZE)
    )


def normalize_fingerprint(fingerprint: str) -> str:
    """Strip separators and uppercase a fingerprint for comparison."""
    return "".join(ch for ch in fingerprint if ch not in " :-\t\n").upper()


def generate_fingerprint(public_key: PublicKeyInput) -> str:
    """
    Generate a human-readable fingerprint from a public key using SHA-256.

    The hash is taken over the canonical raw point, so the raw, SPKI and
    base64 encodings of one key share a fingerprint. The digest is cut to
    128 bits and shown as 8 groups of 4 uppercase hex digits.

    Raises:
        MalformedKeyInputError: If the input is not a valid P-256 public key
    """
    digest = hashes.Hash(hashes.SHA256())
    digest.update(encode_public_key(public_key))
    return format_fingerprint(digest.finalize()[:FINGERPRINT_BYTES].hex())


def fingerprints_match(first: str, second: str) -> bool:
    """
    Compare two fingerprints, ignoring spacing and case.

    Uses constant-time comparison to prevent timing attacks.
    """
    return hmac.compare_digest(
        normalize_fingerprint(first).encode("ascii", "replace"),
        normalize_fingerprint(second).encode("ascii", "replace"),
    )
