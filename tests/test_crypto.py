"""
Roomseal - Cryptography tests.

Tests for identity keys, fingerprints, and text message encryption.
"""

import base64
import pickle

import pytest

from roomseal import identity, message_cipher
from roomseal.errors import (
    CryptoUnavailableError,
    DecryptionFailure,
    ErrorCode,
    MalformedKeyInputError,
    is_failure,
)
from roomseal.fingerprint import fingerprints_match, format_fingerprint, generate_fingerprint


def test_keypair_generation(alice):
    """Test P-256 key pair generation and raw export."""
    public = alice.export_public_key()

    assert len(public) == 65
    assert public[0] == 0x04
    assert alice.export_public_key() == public  # no side effects
    assert base64.b64decode(alice.export_public_key_b64()) == public


def test_keypairs_are_unique(alice, bob):
    """Test that each session gets its own key pair."""
    assert alice.export_public_key() != bob.export_public_key()


def test_initialize_is_idempotent(alice):
    """Test that a second initialize keeps the existing key pair."""
    public = alice.export_public_key()
    alice.initialize()
    assert alice.export_public_key() == public


def test_export_before_initialize_fails():
    """Test that an uninitialized keyring refuses to export."""
    keyring = identity.IdentityKeyring()
    assert not keyring.initialized
    with pytest.raises(CryptoUnavailableError):
        keyring.export_public_key()


def test_initialize_without_backend(monkeypatch):
    """Test that a missing backend surfaces as CryptoUnavailable."""

    def unavailable(curve):
        raise identity.UnsupportedAlgorithm("P-256 not supported")

    monkeypatch.setattr(identity.ec, "generate_private_key", unavailable)
    with pytest.raises(CryptoUnavailableError) as exc_info:
        identity.IdentityKeyring().initialize()
    assert exc_info.value.code == ErrorCode.E100_CRYPTO_UNAVAILABLE


def test_private_key_not_exposed(alice):
    """Test that the private key cannot leave the keyring."""
    assert not hasattr(alice, "private_key")
    assert not hasattr(alice, "get_private_key_bytes")
    assert "PrivateKey" not in repr(alice)
    with pytest.raises(TypeError):
        pickle.dumps(alice)


def test_load_public_key_formats(alice):
    """Test that raw, SPKI and base64 encodings load to the same point."""
    raw = alice.export_public_key()
    spki = alice.export_public_key_spki()

    assert identity.encode_public_key(raw) == raw
    assert identity.encode_public_key(spki) == raw
    assert identity.encode_public_key(alice.export_public_key_b64()) == raw
    assert identity.encode_public_key(base64.b64encode(spki).decode()) == raw


@pytest.mark.parametrize(
    "bad_key",
    [
        b"",
        b"\x04" + b"\x00" * 64,  # not on the curve
        b"\x04" + b"\x01" * 10,
        b"not a key at all",
        "%%% not base64 %%%",
        12345,
    ],
)
def test_load_public_key_rejects_malformed(bad_key):
    """Test that malformed key input is rejected."""
    with pytest.raises(MalformedKeyInputError):
        identity.load_public_key(bad_key)


def test_pairwise_key_agreement(alice, bob, carol):
    """Test that ECDH gives both peers the same derived key."""
    alice_side = alice.derive_shared_key(bob.export_public_key_b64())
    bob_side = bob.derive_shared_key(alice.export_public_key())

    assert alice_side == bob_side
    assert len(alice_side) == 32
    assert alice.derive_shared_key(carol.export_public_key()) != alice_side


def test_fingerprint_generation(alice, bob):
    """Test fingerprint format, stability and uniqueness."""
    fingerprint = generate_fingerprint(alice.export_public_key())

    groups = fingerprint.split(" ")
    assert len(groups) == 8
    assert all(len(group) == 4 for group in groups)
    assert all(c in "0123456789ABCDEF" for c in "".join(groups))

    # Deterministic across calls and encodings
    assert generate_fingerprint(alice.export_public_key()) == fingerprint
    assert generate_fingerprint(alice.export_public_key_spki()) == fingerprint
    assert alice.fingerprint() == fingerprint

    assert generate_fingerprint(bob.export_public_key()) != fingerprint


def test_fingerprints_match(alice, bob):
    """Test fingerprint comparison ignores spacing and case."""
    fingerprint = alice.fingerprint()

    assert fingerprints_match(fingerprint, fingerprint.replace(" ", "").lower())
    assert fingerprints_match(format_fingerprint(fingerprint.replace(" ", "")), fingerprint)
    assert not fingerprints_match(fingerprint, bob.fingerprint())


def test_message_round_trip(room_key):
    """Test encryption and decryption of unicode text."""
    plaintext = "Secret message with unicode: こんにちは 🔒"

    encrypted = message_cipher.encrypt_message(plaintext, room_key)

    assert len(encrypted.nonce) == 12
    assert plaintext.encode("utf-8") not in encrypted.ciphertext
    assert message_cipher.decrypt_message(encrypted.ciphertext, encrypted.nonce, room_key) == plaintext


def test_empty_message_round_trip(room_key):
    """Test that an empty message is not confused with a failure."""
    encrypted = message_cipher.encrypt_message("", room_key)
    assert message_cipher.decrypt_message(encrypted.ciphertext, encrypted.nonce, room_key) == ""


def test_nonce_freshness(room_key):
    """Test that identical plaintexts produce different ciphertexts."""
    first = message_cipher.encrypt_message("hello", room_key)
    second = message_cipher.encrypt_message("hello", room_key)

    assert first.nonce != second.nonce
    assert first.ciphertext != second.ciphertext
    assert message_cipher.decrypt_message(first.ciphertext, first.nonce, room_key) == "hello"
    assert message_cipher.decrypt_message(second.ciphertext, second.nonce, room_key) == "hello"


def test_raw_key_bytes_accepted(room_key):
    """Test that 32 raw key bytes work the same as a RoomKey."""
    encrypted = message_cipher.encrypt_message("raw", bytes(room_key))
    assert message_cipher.decrypt_message(encrypted.ciphertext, encrypted.nonce, room_key) == "raw"


def test_tamper_detection_ciphertext(room_key, flip_bit):
    """Test that flipping any bit of the ciphertext is detected."""
    encrypted = message_cipher.encrypt_message("tamper me", room_key)

    for bit in range(len(encrypted.ciphertext) * 8):
        result = message_cipher.decrypt_message(flip_bit(encrypted.ciphertext, bit), encrypted.nonce, room_key)
        assert isinstance(result, DecryptionFailure)


def test_tamper_detection_nonce(room_key, flip_bit):
    """Test that flipping any bit of the nonce is detected."""
    encrypted = message_cipher.encrypt_message("tamper me", room_key)

    for bit in range(len(encrypted.nonce) * 8):
        result = message_cipher.decrypt_message(encrypted.ciphertext, flip_bit(encrypted.nonce, bit), room_key)
        assert isinstance(result, DecryptionFailure)


def test_wrong_key_returns_failure(room_key, alice):
    """Test that decryption under another room's key fails gracefully."""
    from roomseal.room_key import derive_room_key

    other_key = derive_room_key("XYZZZ9", [alice.export_public_key()])
    encrypted = message_cipher.encrypt_message("Secret message", room_key)

    result = message_cipher.decrypt_message(encrypted.ciphertext, encrypted.nonce, other_key)

    assert is_failure(result)
    assert not result
    assert result.code == ErrorCode.E102_DECRYPTION_FAILED
    assert result.details["room_id"] == "XYZZZ9"
    assert (result or result.placeholder) == "Could not decrypt"


@pytest.mark.parametrize(
    "ciphertext,nonce",
    [
        (b"", b"\x00" * 12),
        (b"\x00" * 32, b"\x00" * 11),
        ("!!!not-base64!!!", "AAAAAAAAAAAAAAAA"),
        (None, b"\x00" * 12),
    ],
)
def test_malformed_input_returns_failure(room_key, ciphertext, nonce):
    """Test that malformed envelopes never raise."""
    result = message_cipher.decrypt_message(ciphertext, nonce, room_key)
    assert isinstance(result, DecryptionFailure)


def test_malformed_key_raises():
    """Test that a wrong-length key is a caller error."""
    with pytest.raises(MalformedKeyInputError):
        message_cipher.encrypt_message("hello", b"\x00" * 16)
    with pytest.raises(MalformedKeyInputError):
        message_cipher.decrypt_message(b"\x00" * 32, b"\x00" * 12, b"short")


def test_message_envelope_wire_format(room_key):
    """Test the base64 wire form of the message envelope."""
    encrypted = message_cipher.encrypt_message("wire", room_key)
    wire = encrypted.to_dict()

    assert set(wire) == {"ciphertext", "nonce"}
    assert message_cipher.EncryptedMessage.from_dict(wire) == encrypted
    assert message_cipher.decrypt_message(wire["ciphertext"], wire["nonce"], room_key) == "wire"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
