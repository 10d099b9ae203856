"""
Roomseal - Identity key management.

Owns the device session's NIST P-256 key pair. The public key is exported
for the signaling layer in a fixed 65-byte encoding (uncompressed SEC1
point), optionally base64 encoded for transport. The private key stays
inside IdentityKeyring for the lifetime of the process: there is no
accessor for it, it is not picklable, and it never appears in a repr.

Public keys received from peers are parsed by load_public_key(), which
accepts the raw point, SPKI DER, or base64 text of either, and validates
that the point lies on P-256.
"""

import base64
import binascii
import logging
import os
from typing import Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .constants import KEY_SIZE, PAIRWISE_KEY_INFO, PUBLIC_KEY_PREFIX, PUBLIC_KEY_SIZE
from .errors import CryptoUnavailableError, ErrorCode, MalformedKeyInputError

logger = logging.getLogger(__name__)

PublicKeyInput = Union[bytes, bytearray, memoryview, str, ec.EllipticCurvePublicKey]


def _decode_text_key(data: str) -> bytes:
    """Decode base64 (standard or URL-safe) public key text."""
    text = data.strip()
    try:
        if "-" in text or "_" in text:
            return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedKeyInputError(
            message="Public key text is not valid base64",
            details={"length": len(text)},
        ) from e


def load_public_key(data: PublicKeyInput) -> ec.EllipticCurvePublicKey:
    """
    Parse a peer public key in any accepted wire format.

    Args:
        data: Raw 65-byte point, SPKI DER bytes, base64 text of either,
            or an already-loaded P-256 public key

    Returns:
        The P-256 public key object

    Raises:
        MalformedKeyInputError: If the input is not a valid P-256 public key
    """
    if isinstance(data, ec.EllipticCurvePublicKey):
        key = data
    else:
        if isinstance(data, str):
            raw = _decode_text_key(data)
        elif isinstance(data, (bytes, bytearray, memoryview)):
            raw = bytes(data)
        else:
            raise MalformedKeyInputError(
                message=f"Unsupported public key type: {type(data).__name__}"
            )

        if len(raw) == PUBLIC_KEY_SIZE and raw[:1] == PUBLIC_KEY_PREFIX:
            try:
                key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), raw)
            except ValueError as e:
                raise MalformedKeyInputError(
                    message="Public key point is not on the P-256 curve",
                    details={"length": len(raw)},
                ) from e
        else:
            try:
                key = serialization.load_der_public_key(raw)
            except (ValueError, UnsupportedAlgorithm) as e:
                raise MalformedKeyInputError(
                    message="Public key is neither a raw P-256 point nor SPKI DER",
                    details={"length": len(raw)},
                ) from e

    if not isinstance(key, ec.EllipticCurvePublicKey) or key.curve.name != "secp256r1":
        raise MalformedKeyInputError(message="Public key is not a P-256 key")
    return key


def encode_public_key(data: PublicKeyInput) -> bytes:
    """
    Return the canonical raw encoding of a public key.

    Different wire encodings of the same point (raw, SPKI, base64) all map
    to the same 65 bytes, which is what fingerprints and room key
    derivation operate on.

    Raises:
        MalformedKeyInputError: If the input is not a valid P-256 public key
    """
    key = load_public_key(data)
    return key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )


class IdentityKeyring:
    """
    Holds one P-256 identity key pair per device session.

    Usage:
        keyring = IdentityKeyring()
        keyring.initialize()
        wire_key = keyring.export_public_key_b64()
    """

    def __init__(self):
        self._private_key: Optional[ec.EllipticCurvePrivateKey] = None
        self._public_bytes: Optional[bytes] = None

    @property
    def initialized(self) -> bool:
        """Whether a key pair has been generated."""
        return self._private_key is not None

    def initialize(self) -> "IdentityKeyring":
        """
        Generate a fresh P-256 key pair for this session.

        Calling it again on an initialized keyring keeps the existing pair.

        Raises:
            CryptoUnavailableError: If the backend cannot provide P-256 or
                a secure random source
        """
        if self._private_key is not None:
            return self

        try:
            # Check the OS CSPRNG; AES-GCM nonces depend on it
            os.urandom(1)
            private_key = ec.generate_private_key(ec.SECP256R1())
        except (UnsupportedAlgorithm, NotImplementedError) as e:
            logger.error(f"Cryptographic backend unavailable: {e}")
            raise CryptoUnavailableError(
                ErrorCode.E100_CRYPTO_UNAVAILABLE,
                f"Secure cryptographic context unavailable: {e}",
            ) from e

        self._private_key = private_key
        self._public_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint,
        )

        from .fingerprint import generate_fingerprint

        logger.info(f"Identity key pair generated: {generate_fingerprint(self._public_bytes)}")
        return self

    def _require_initialized(self) -> None:
        if self._private_key is None:
            raise CryptoUnavailableError(
                ErrorCode.E100_CRYPTO_UNAVAILABLE,
                "Identity keyring used before initialize()",
            )

    def export_public_key(self) -> bytes:
        """Get public key as the 65-byte uncompressed point."""
        self._require_initialized()
        return self._public_bytes

    def export_public_key_b64(self) -> str:
        """Get public key as base64 text for signaling messages."""
        return base64.b64encode(self.export_public_key()).decode("utf-8")

    def export_public_key_spki(self) -> bytes:
        """Get public key as SubjectPublicKeyInfo DER."""
        self._require_initialized()
        return self._private_key.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def fingerprint(self) -> str:
        """Fingerprint of this session's own public key."""
        from .fingerprint import generate_fingerprint

        return generate_fingerprint(self.export_public_key())

    def derive_shared_key(self, peer_public_key: PublicKeyInput, info: bytes = PAIRWISE_KEY_INFO) -> bytes:
        """
        Derive a pairwise 256-bit key with a peer via ECDH + HKDF-SHA256.

        Both sides compute the same key from their own private key and the
        other's public key. The raw ECDH secret never leaves this method.

        Raises:
            CryptoUnavailableError: If the keyring is not initialized
            MalformedKeyInputError: If the peer key is invalid
        """
        self._require_initialized()
        peer = load_public_key(peer_public_key)
        shared_secret = self._private_key.exchange(ec.ECDH(), peer)
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=None,
            info=info,
        )
        return hkdf.derive(shared_secret)

    def __repr__(self) -> str:
        if self._public_bytes is None:
            return "IdentityKeyring(uninitialized)"
        return f"IdentityKeyring(public_key={self.export_public_key_b64()[:16]}...)"

    def __reduce__(self):
        raise TypeError("IdentityKeyring holds a private key and cannot be serialized")
