"""Command-line interface for cose-envelope."""

import argparse
import binascii
import logging
import sys
from collections.abc import Sequence
from typing import Optional

from . import __version__, edn_utils
from .cose_message import CoseMessage
from .exceptions import CoseError
from .recipients import CoseRecipient
from .validation import validate_structure

STRUCTURES = ("COSE_Encrypt0", "COSE_Encrypt", "COSE_Mac0", "COSE_Mac", "COSE_Sign1", "COSE_recipient", "COSE_Key")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="cose-envelope",
        description="Inspect and validate COSE messages and their recipient trees",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Inspect subcommand
    inspect_parser = subparsers.add_parser("inspect", help="Decode a COSE message and show its structure")
    inspect_parser.add_argument("input", help="File holding a tagged COSE message")
    inspect_parser.add_argument("--hex", action="store_true", help="Input file holds hex text")

    # Validate subcommand
    validate_parser = subparsers.add_parser("validate", help="Check a structure against its CDDL")
    validate_parser.add_argument("input", help="File holding the CBOR structure")
    validate_parser.add_argument("--structure", "-s", choices=STRUCTURES, required=True)
    validate_parser.add_argument("--hex", action="store_true", help="Input file holds hex text")

    return parser


def read_input(path: str, as_hex: bool) -> bytes:
    """Read a file as raw CBOR, or as hex text when ``as_hex`` is set."""
    with open(path, "rb") as f:
        data = f.read()
    if as_hex:
        return binascii.unhexlify(b"".join(data.split()))
    return data


def describe_recipients(recipients: Sequence[CoseRecipient], indent: int = 1) -> list[str]:
    """Render a recipient tree, one line per recipient."""
    lines = []
    for recipient in recipients:
        alg = recipient.alg.fullname if recipient.alg is not None else "?"
        kind = recipient.kind.value if recipient.kind is not None else type(recipient).__name__
        lines.append(f"{'  ' * indent}{kind} alg={alg} context={recipient.context}")
        lines.extend(describe_recipients(recipient.recipients, indent + 1))
    return lines


def inspect(data: bytes) -> str:
    """Describe a tagged COSE message."""
    msg = CoseMessage.decode(data)
    lines = [
        f"{type(msg).__name__} (tag {msg.cbor_tag})",
        f"protected: {edn_utils.header_diag(msg.phdr_encoded)}",
        f"unprotected: {edn_utils.to_diag(msg.uhdr_encoded)}",
    ]
    recipients = getattr(msg, "recipients", ())
    if recipients:
        lines.append("recipients:")
        lines.extend(describe_recipients(recipients))
    lines.append("diagnostic:")
    lines.append(edn_utils.cbor_to_diag(data))
    return "\n".join(lines)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return 0

    try:
        data = read_input(args.input, args.hex)
    except (OSError, binascii.Error, ValueError) as e:
        print(f"Cannot read {args.input}: {e}", file=sys.stderr)
        return 1

    if args.command == "inspect":
        try:
            print(inspect(data))
        except CoseError as e:
            print(f"Invalid COSE message: {e}", file=sys.stderr)
            return 1
        return 0

    if validate_structure(data, args.structure):
        print(f"{args.structure}: valid")
        return 0
    print(f"{args.structure}: invalid", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
