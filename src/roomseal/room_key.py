"""
Roomseal - Room key derivation.

Every member of a room derives the same 256-bit AES-GCM key locally from
the room identifier and the complete set of current member public keys:

    keys   = sorted(set(raw_point(k) for k in members))
    ikm    = b"|".join(keys) + b"|" + room_id.encode("utf-8")
    key    = HKDF-SHA256(ikm, salt=None, info=b"roomseal-room-key-v1", L=32)

Sorting makes the result independent of the order in which a member
received the key list. The key is replaced whenever membership changes;
ciphertext from an earlier membership epoch is not re-encrypted.

Trust boundary: the inputs are public. Anyone who observes the room
identifier and the full member key set can compute the same key. The
scheme is only as confidential as the signaling channel that carries room
codes and member keys. This derivation is kept for compatibility with
existing clients and must not be changed silently.
"""

import hashlib
import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .constants import DEFAULT_RETAIN_EPOCHS, KEY_SIZE, ROOM_KEY_INFO, ROOM_KEY_SEPARATOR
from .errors import ErrorCode, InvalidMembershipError, MalformedKeyInputError, RoomsealError
from .identity import PublicKeyInput, encode_public_key

logger = logging.getLogger(__name__)

MemberKeys = Union[Iterable[PublicKeyInput], Mapping[str, PublicKeyInput]]


@dataclass(frozen=True)
class RoomKey:
    """Symmetric key for one room membership snapshot.

    Attributes:
        room_id: Room identifier the key was derived for
        key: 32 raw key bytes (hidden from repr)
        membership_hash: SHA-256 hex of the canonical member key list
        member_count: Number of distinct member keys
        epoch: Position in the room's key history (0 for a fresh derivation)
    """

    room_id: str
    key: bytes = field(repr=False)
    membership_hash: str
    member_count: int
    epoch: int = 0

    def __bytes__(self) -> bytes:
        return self.key

    @property
    def check_value(self) -> str:
        """Short non-secret digest that lets two members confirm key equality."""
        return hashlib.sha256(b"roomseal-key-check" + self.key).hexdigest()[:16].upper()


def resolve_key(key: Union[RoomKey, bytes]) -> bytes:
    """
    Get raw AES-256 key bytes from a RoomKey or a bytes-like key.

    Raises:
        MalformedKeyInputError: If the key is not exactly 32 bytes
    """
    if isinstance(key, RoomKey):
        return key.key
    if not isinstance(key, (bytes, bytearray, memoryview)) or len(key) != KEY_SIZE:
        raise MalformedKeyInputError(
            message=f"Room key must be {KEY_SIZE} bytes",
            details={"type": type(key).__name__},
        )
    return bytes(key)


def canonical_member_keys(member_public_keys: MemberKeys) -> List[bytes]:
    """
    Normalize, de-duplicate and sort a member key snapshot.

    Args:
        member_public_keys: Iterable of public keys, or a mapping of
            username to public key (values are used)

    Returns:
        Sorted list of distinct 65-byte raw points

    Raises:
        InvalidMembershipError: If the set is empty
        MalformedKeyInputError: If any key is not a valid P-256 public key
    """
    if member_public_keys is None:
        raise InvalidMembershipError(message="Member key set is missing")

    if isinstance(member_public_keys, Mapping):
        candidates = list(member_public_keys.values())
    elif isinstance(member_public_keys, (bytes, str)):
        # A single key passed where a set was expected
        raise InvalidMembershipError(message="Member keys must be a collection, not a single key")
    else:
        candidates = list(member_public_keys)

    if not candidates:
        raise InvalidMembershipError(message="Cannot derive a room key for an empty member set")

    canonical = set()
    for index, candidate in enumerate(candidates):
        try:
            canonical.add(encode_public_key(candidate))
        except MalformedKeyInputError as e:
            raise MalformedKeyInputError(
                message=f"Member key {index} is malformed: {e.message}",
                details={"index": index},
            ) from e

    return sorted(canonical)


def membership_hash(member_public_keys: MemberKeys) -> str:
    """SHA-256 hex digest identifying a membership snapshot."""
    return hashlib.sha256(ROOM_KEY_SEPARATOR.join(canonical_member_keys(member_public_keys))).hexdigest()


def derive_room_key(room_id: str, member_public_keys: MemberKeys, epoch: int = 0) -> RoomKey:
    """
    Derive the shared room key for a membership snapshot.

    Pure function of (room_id, set of member keys): every member computes
    byte-identical keys regardless of key order or encoding.

    Args:
        room_id: Room identifier, stable for the room's lifetime
        member_public_keys: Complete current member key set
        epoch: Epoch number to stamp on the result

    Returns:
        RoomKey for this snapshot

    Raises:
        InvalidMembershipError: If room_id is empty or the member set is empty
        MalformedKeyInputError: If any member key is malformed
    """
    if not isinstance(room_id, str) or not room_id:
        raise InvalidMembershipError(message="Room identifier must be a non-empty string")

    members = canonical_member_keys(member_public_keys)
    joined = ROOM_KEY_SEPARATOR.join(members)
    ikm = joined + ROOM_KEY_SEPARATOR + room_id.encode("utf-8")

    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=None,
        info=ROOM_KEY_INFO,
    )
    key = hkdf.derive(ikm)

    logger.debug(f"Derived room key for {room_id} ({len(members)} members)")
    return RoomKey(
        room_id=room_id,
        key=key,
        membership_hash=hashlib.sha256(joined).hexdigest(),
        member_count=len(members),
        epoch=epoch,
    )


class RoomKeyStore:
    """
    Holds the current key for each room and swaps it atomically.

    RoomKey values are immutable, so an encrypt or decrypt call that already
    fetched a key finishes under that key even if membership changes
    mid-flight. Superseded keys are discarded unless retain_epochs > 0.

    Each update takes a per-room ticket before deriving. Derivations can
    finish out of order when updates run on executor threads; a result whose
    ticket is older than the installed one is dropped, so the current key
    always follows the latest membership update.
    """

    def __init__(self, retain_epochs: int = DEFAULT_RETAIN_EPOCHS):
        if not isinstance(retain_epochs, int) or isinstance(retain_epochs, bool) or retain_epochs < 0:
            raise RoomsealError(
                ErrorCode.E002_INVALID_ARGUMENT,
                "retain_epochs must be a non-negative integer",
                {"retain_epochs": retain_epochs},
            )
        self.retain_epochs = retain_epochs
        self._current: Dict[str, RoomKey] = {}
        self._history: Dict[str, List[RoomKey]] = {}
        self._issued: Dict[str, int] = {}
        self._installed: Dict[str, int] = {}
        self._lock = threading.Lock()

    def update(self, room_id: str, member_public_keys: MemberKeys) -> RoomKey:
        """
        Derive and install the key for a new membership snapshot.

        An unchanged snapshot keeps the current key and epoch. If a later
        update for the same room was installed while this one was deriving,
        this snapshot is stale and the newer key is returned instead.

        Raises:
            InvalidMembershipError: If room_id or the member set is invalid
            MalformedKeyInputError: If any member key is malformed
        """
        with self._lock:
            ticket = self._issued.get(room_id, 0) + 1
            self._issued[room_id] = ticket

        derived = derive_room_key(room_id, member_public_keys)

        with self._lock:
            previous = self._current.get(room_id)
            if ticket <= self._installed.get(room_id, 0):
                logger.debug(f"Dropped stale membership update for {room_id} (ticket {ticket})")
                return previous if previous is not None else derived
            self._installed[room_id] = ticket

            if previous is not None and previous.key == derived.key:
                return previous

            epoch = previous.epoch + 1 if previous is not None else 0
            room_key = replace(derived, epoch=epoch)
            self._current[room_id] = room_key

            if previous is not None and self.retain_epochs > 0:
                history = self._history.setdefault(room_id, [])
                history.append(previous)
                del history[: -self.retain_epochs]

        logger.info(
            f"Room key rotated: room={room_id} epoch={room_key.epoch} "
            f"members={room_key.member_count}"
        )
        return room_key

    def current(self, room_id: str) -> Optional[RoomKey]:
        """Get the current key for a room, or None if none is installed."""
        with self._lock:
            return self._current.get(room_id)

    def require(self, room_id: str) -> RoomKey:
        """
        Get the current key for a room.

        Raises:
            InvalidMembershipError: If no key has been derived for the room
        """
        room_key = self.current(room_id)
        if room_key is None:
            raise InvalidMembershipError(
                ErrorCode.E109_ROOM_KEY_MISSING,
                f"No room key derived for room {room_id}",
                {"room_id": room_id},
            )
        return room_key

    def get(self, room_id: str, epoch: int) -> Optional[RoomKey]:
        """Get the current or a retained earlier key by epoch number."""
        with self._lock:
            current = self._current.get(room_id)
            if current is not None and current.epoch == epoch:
                return current
            for room_key in self._history.get(room_id, []):
                if room_key.epoch == epoch:
                    return room_key
        return None

    def keys_for(self, room_id: str) -> List[RoomKey]:
        """All known keys for a room, newest first."""
        with self._lock:
            keys = list(reversed(self._history.get(room_id, [])))
            current = self._current.get(room_id)
        return ([current] if current is not None else []) + keys

    def close(self, room_id: str) -> None:
        """Discard every key held for a room."""
        with self._lock:
            self._current.pop(room_id, None)
            self._history.pop(room_id, None)
            # Updates still deriving for this room must not reinstall a key
            self._installed[room_id] = self._issued.get(room_id, 0)
        logger.info(f"Room keys discarded: room={room_id}")

    def rooms(self) -> List[str]:
        """Room identifiers with an installed key."""
        with self._lock:
            return sorted(self._current)
