"""
Roomseal - Command line interface.

Offline tools around the engine: show fingerprints, derive a room key's
check value from a membership snapshot, and seal or open files with a room
key. Room keys themselves are never printed.

Examples:
  roomseal keygen
  roomseal fingerprint BNc3...==
  roomseal derive --room AB12C9 BNc3...== BFa1...==
  roomseal encrypt-file --room AB12C9 -m BNc3...== -m BFa1...== photo.png
  roomseal decrypt-file --room AB12C9 -m BNc3...== -m BFa1...== photo.png.sealed
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import Config
from .constants import LOG_DATE_FORMAT, LOG_FORMAT
from .errors import DecryptionFailure, RoomsealError
from .file_cipher import EncryptedFile, decrypt_file, encrypt_path, write_decrypted
from .fingerprint import generate_fingerprint
from .identity import IdentityKeyring
from .room_key import derive_room_key
from .utils import format_file_size, truncate_string

logger = logging.getLogger(__name__)

SEALED_SUFFIX = ".sealed"
ENVELOPE_SUFFIX = ".json"

console = Console()
err_console = Console(stderr=True)


def configure_logging(config: Config, debug: bool = False) -> None:
    """Install log handlers according to the [logging] config section."""
    root = logging.getLogger("roomseal")
    root.setLevel(logging.DEBUG if debug else config.log_level)
    root.handlers.clear()

    if config.get("logging", "console_logging", True):
        root.addHandler(RichHandler(console=err_console, show_path=debug, markup=False))

    log_file = config.get("logging", "file", "")
    if log_file:
        handler = logging.FileHandler(Path(log_file).expanduser(), encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        root.addHandler(handler)


def _cmd_keygen(args: argparse.Namespace, config: Config) -> int:
    keyring = IdentityKeyring().initialize()
    table = Table(title="Session identity", show_header=False)
    table.add_row("Public key", keyring.export_public_key_b64())
    table.add_row("Fingerprint", keyring.fingerprint())
    console.print(table)
    console.print("[dim]The private key is discarded when this process exits.[/dim]")
    return 0


def _cmd_fingerprint(args: argparse.Namespace, config: Config) -> int:
    table = Table(title="Fingerprints")
    table.add_column("Public key")
    table.add_column("Fingerprint", style="bold")
    for key in args.keys:
        table.add_row(truncate_string(key, 24), generate_fingerprint(key))
    console.print(table)
    return 0


def _cmd_derive(args: argparse.Namespace, config: Config) -> int:
    room_key = derive_room_key(args.room, args.keys)
    table = Table(title=f"Room {room_key.room_id}", show_header=False)
    table.add_row("Members", str(room_key.member_count))
    table.add_row("Membership hash", room_key.membership_hash)
    table.add_row("Key check value", room_key.check_value)
    console.print(table)
    return 0


def _cmd_encrypt_file(args: argparse.Namespace, config: Config) -> int:
    room_key = derive_room_key(args.room, args.members)
    source = Path(args.path)
    output = Path(args.output) if args.output else source.with_name(source.name + SEALED_SUFFIX)

    encrypted = asyncio.run(
        encrypt_path(
            source,
            room_key,
            mime_type=args.mime_type,
            chunk_size=config.get("files", "chunk_size"),
            max_file_size=config.get("files", "max_file_size"),
        )
    )

    output.write_bytes(encrypted.ciphertext)
    envelope_path = output.with_name(output.name + ENVELOPE_SUFFIX)
    envelope_path.write_text(json.dumps(encrypted.to_dict(), indent=2), encoding="utf-8")

    console.print(f"Sealed [bold]{source.name}[/bold] -> {output} ({format_file_size(encrypted.size)})")
    console.print(f"Envelope: {envelope_path}")
    return 0


def _cmd_decrypt_file(args: argparse.Namespace, config: Config) -> int:
    room_key = derive_room_key(args.room, args.members)
    sealed_path = Path(args.path)
    envelope_path = (
        Path(args.envelope) if args.envelope else sealed_path.with_name(sealed_path.name + ENVELOPE_SUFFIX)
    )

    envelope = EncryptedFile.from_dict(
        json.loads(envelope_path.read_text(encoding="utf-8")),
        sealed_path.read_bytes(),
    )
    result = decrypt_file(envelope.ciphertext, envelope.nonce, envelope.metadata, room_key)
    if isinstance(result, DecryptionFailure):
        err_console.print(f"[red]{result.placeholder}:[/red] {result.reason}")
        return 2

    directory = Path(args.directory) if args.directory else sealed_path.parent
    target = asyncio.run(write_decrypted(result, directory))
    console.print(f"Opened [bold]{result.filename}[/bold] ({result.mime_type}) -> {target}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roomseal",
        description="Roomseal - end-to-end room encryption tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples:", 1)[1] if __doc__ else None,
    )
    parser.add_argument("--version", action="version", version=f"Roomseal {__version__}")
    parser.add_argument("--config", type=str, default=None, help="Path to config.toml")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    keygen = sub.add_parser("keygen", help="Generate a session key pair and show its fingerprint")
    keygen.set_defaults(handler=_cmd_keygen)

    fingerprint = sub.add_parser("fingerprint", help="Show fingerprints of public keys")
    fingerprint.add_argument("keys", nargs="+", help="Base64 public keys")
    fingerprint.set_defaults(handler=_cmd_fingerprint)

    derive = sub.add_parser("derive", help="Show the key check value for a membership snapshot")
    derive.add_argument("--room", required=True, help="Room identifier")
    derive.add_argument("keys", nargs="+", help="Base64 member public keys")
    derive.set_defaults(handler=_cmd_derive)

    for name, handler, help_text in (
        ("encrypt-file", _cmd_encrypt_file, "Seal a file under a room key"),
        ("decrypt-file", _cmd_decrypt_file, "Open a sealed file with a room key"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--room", required=True, help="Room identifier")
        cmd.add_argument(
            "-m", "--member", dest="members", action="append", required=True,
            help="Base64 member public key (repeat for each member)",
        )
        cmd.add_argument("path", help="Input file")
        cmd.set_defaults(handler=handler)

    sub.choices["encrypt-file"].add_argument("-o", "--output", help="Sealed output path")
    sub.choices["encrypt-file"].add_argument("--mime-type", default=None, help="Override MIME type")
    sub.choices["decrypt-file"].add_argument("--envelope", help="Envelope JSON path")
    sub.choices["decrypt-file"].add_argument("-d", "--directory", help="Output directory")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the roomseal command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = Config(Path(args.config).expanduser() if args.config else None)
        configure_logging(config, args.debug)
        return args.handler(args, config)
    except RoomsealError as e:
        logger.debug(f"Command failed: {e.to_dict()}")
        err_console.print(f"[red]Error[/red] {e}")
        return 1
    except (OSError, json.JSONDecodeError) as e:
        err_console.print(f"[red]Error[/red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
