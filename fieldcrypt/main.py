"""
fieldcrypt - Main Entry Point

Terminal front end for the field encryption tool.

    fieldcrypt new --device-key <base64> --field "secret value"
    fieldcrypt existing --key <base64> --field "another value"

The server public key printed by ``new`` must be given to the device; the
encryption key can be stored and reused later with ``existing``.
"""

import argparse
import asyncio
import logging
import sys
from typing import Iterable, List, Optional, TextIO

from .config import SessionConfig
from .core_crypto.errors import FieldCryptError
from .fields.field_cipher import FIELD_VALUE_INVALID_MESSAGE
from .integration.event_logger import OutputField, Severity
from .session.encryption_session import EncryptionSession, Mode


logger = logging.getLogger(__name__)


def make_terminal_sink(stream: TextIO):
    """Notification sink that prints banners as ``[SEVERITY] message``."""
    def sink(severity: Severity, message: str) -> None:
        print(f"[{severity.value.upper()}] {message}", file=stream)
    return sink


def render_output(output: OutputField, stream: TextIO, reveal: bool = False) -> None:
    print(f"{output.label}:", file=stream)
    print(f"  {output.display_value(reveal)}", file=stream)


def _timeout(value: str) -> float:
    """``--timeout`` value: seconds, 0 disables the limit."""
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number of seconds: {value!r}") from None
    if seconds < 0:
        raise argparse.ArgumentTypeError(f"must be 0 (no limit) or positive, got {value!r}")
    return seconds


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fieldcrypt",
        description="Derive a device encryption key and encrypt field values for it.",
    )
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="enable debug logging")
    parser.add_argument("--timeout", type=_timeout, default=None,
                        help="seconds allowed per cryptographic backend call (0 for no limit)")
    parser.add_argument("--fail-closed", action="store_true", default=None,
                        help="abort instead of warning when a precondition is not met")
    parser.add_argument("--transport-url", default=None,
                        help="URL the tool is served from (plain http is flagged)")

    sub = parser.add_subparsers(dest="mode", required=True)

    new = sub.add_parser(Mode.GENERATE_NEW.value, help=Mode.GENERATE_NEW.label)
    new.add_argument("--device-key", required=True,
                     help="device public key from device.json (base64, 64 bytes)")
    new.add_argument("--show-key", action="store_true",
                     help="print the encryption key unmasked")

    existing = sub.add_parser(Mode.USE_EXISTING.value, help=Mode.USE_EXISTING.label)
    existing.add_argument("--key", required=True,
                          help="previously generated encryption key (base64, 16 bytes)")

    for p in (new, existing):
        p.add_argument("--field", action="append", default=[], metavar="TEXT",
                       help="plain text field value to encrypt (repeatable)")
        p.add_argument("--stdin", action="store_true",
                       help="read one field value per line from standard input")
    return parser


def _config_from_args(args: argparse.Namespace) -> SessionConfig:
    config = SessionConfig.from_env()
    if args.timeout is not None:
        config.backend_timeout = args.timeout or None
    if args.fail_closed is not None:
        config.fail_closed = args.fail_closed
    if args.transport_url is not None:
        config.transport_url = args.transport_url
    return config


def _field_values(args: argparse.Namespace, stdin: TextIO) -> Optional[List[str]]:
    """Field values from ``--field`` and ``--stdin``; None if stdin is not text."""
    values = list(args.field)
    if args.stdin:
        try:
            values.extend(line.rstrip("\r\n") for line in stdin)
        except UnicodeDecodeError as exc:
            logger.debug("Unreadable standard input: %s", exc.reason)
            return None
    return values


async def run(args: argparse.Namespace, stdin: Optional[TextIO] = None,
              stdout: Optional[TextIO] = None, stderr: Optional[TextIO] = None,
              config: Optional[SessionConfig] = None) -> int:
    """Run one session for the parsed arguments; returns the exit code."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr
    if config is None:
        config = _config_from_args(args)
    notify = make_terminal_sink(stderr)
    session = EncryptionSession(config=config, notify=notify)
    async with session:
        session.select_mode(args.mode)
        try:
            if args.mode == Mode.GENERATE_NEW.value:
                ready = await session.submit_device_public_key(args.device_key)
            else:
                ready = await session.submit_symmetric_key(args.key)
            if ready is None:
                return 1

            for output in session.outputs():
                render_output(output, stdout, reveal=getattr(args, "show_key", False))

            values = _field_values(args, stdin)
            if values is None:
                notify(Severity.DANGER, FIELD_VALUE_INVALID_MESSAGE)
                return 1
            for value in values:
                encrypted = await session.encrypt_field(value)
                render_output(OutputField("Field value (encrypted)", encrypted), stdout)
        except FieldCryptError as exc:
            logger.debug("Flow aborted: %r", exc)
            return 1
    return 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    """Main entry point for fieldcrypt."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    try:
        config = _config_from_args(args)
    except ValueError as exc:
        # invalid FIELDCRYPT_* environment values
        print(f"fieldcrypt: {exc}", file=sys.stderr)
        return 2
    return asyncio.run(run(args, config=config))


if __name__ == "__main__":
    sys.exit(main())
