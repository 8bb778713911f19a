"""
nekoin command.

Usage:
    nekoin height [--force]
    nekoin read TX_ID [--text] [--timeout SECONDS]
    nekoin sign MESSAGE
    nekoin verify [FILE]

Settings come from NEKOIN_* environment variables (see NekoinSettings).
``sign`` and ``verify`` never touch the network; ``sign`` only needs
NEKOIN_PRIVATE_KEY.
"""
import argparse
import base64
import json
import logging
import os
import sys
from typing import Callable, List, Mapping, Optional, TextIO

from pydantic import ValidationError

from nekoin_sdk import (
    GatewayError,
    InvalidSignatureError,
    MalformedEnvelopeError,
    MalformedNotificationError,
    MessageResolutionError,
    NekoinClient,
    NekoinError,
    NekoinSettings,
    NotFoundError,
    SignatureCodec,
)

logger = logging.getLogger("nekoin_cli")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_FOUND = 2
EXIT_GATEWAY = 3
EXIT_DATA_INTEGRITY = 4
EXIT_MALFORMED_ENVELOPE = 5
EXIT_INVALID_SIGNATURE = 6

ClientFactory = Callable[[NekoinSettings], NekoinClient]


def exit_code_for(error: Exception) -> int:
    """Map an SDK error to the process exit code."""
    if isinstance(error, NotFoundError):
        return EXIT_NOT_FOUND
    if isinstance(error, GatewayError):
        return EXIT_GATEWAY
    if isinstance(error, (MalformedNotificationError, MessageResolutionError)):
        return EXIT_DATA_INTEGRITY
    if isinstance(error, MalformedEnvelopeError):
        return EXIT_MALFORMED_ENVELOPE
    if isinstance(error, InvalidSignatureError):
        return EXIT_INVALID_SIGNATURE
    return EXIT_ERROR


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nekoin", description="Nekoin contract client")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    height = commands.add_parser("height", help="print the highest block index")
    height.add_argument("--force", action="store_true", help="query the node instead of the cache")

    read = commands.add_parser("read", help="print the messages written by a transaction")
    read.add_argument("tx_id", help="transaction hash")
    read.add_argument("--text", action="store_true", help="decode contents as UTF-8")
    read.add_argument("--timeout", type=float, default=None, help="deadline in seconds")

    sign = commands.add_parser("sign", help="sign a message with the service wallet")
    sign.add_argument("message")

    verify = commands.add_parser("verify", help="verify a signed message envelope (JSON)")
    verify.add_argument("file", nargs="?", default="-", help="envelope file, '-' for stdin")
    return parser


def _default_client_factory(settings: NekoinSettings) -> NekoinClient:
    return NekoinClient.from_settings(settings)


def _read_envelope(path: str, stdin: TextIO) -> dict:
    if path == "-":
        text = stdin.read()
    else:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedEnvelopeError(f"Envelope is not valid JSON: {e}")


def _run(
    args: argparse.Namespace,
    env: Mapping[str, str],
    client_factory: ClientFactory,
    stdin: TextIO,
    stdout: TextIO
) -> None:
    if args.command == "sign":
        private_key = env.get("NEKOIN_PRIVATE_KEY")
        if not private_key:
            raise ValueError("Missing required environment variables: NEKOIN_PRIVATE_KEY")
        envelope = SignatureCodec(private_key).sign(args.message)
        print(json.dumps(envelope.model_dump(by_alias=True)), file=stdout)
        return

    if args.command == "verify":
        address = SignatureCodec.verify_and_recover_address(_read_envelope(args.file, stdin))
        print(address, file=stdout)
        return

    with client_factory(NekoinSettings.from_env(env)) as client:
        if args.command == "height":
            height = client.forced_height() if args.force else client.cached_height()
            print(height, file=stdout)
        elif args.command == "read":
            messages = client.read_messages(args.tx_id, timeout=args.timeout)
            if args.text:
                output = {k: v.decode("utf-8", errors="replace") for k, v in messages.items()}
            else:
                output = {k: base64.b64encode(v).decode("ascii") for k, v in messages.items()}
            print(json.dumps(output, indent=2, sort_keys=True), file=stdout)


def main(
    argv: Optional[List[str]] = None,
    env: Optional[Mapping[str, str]] = None,
    client_factory: Optional[ClientFactory] = None,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None
) -> int:
    """
    Entry point of the nekoin command.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)
    stderr = stderr or sys.stderr
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    try:
        _run(
            args,
            os.environ if env is None else env,
            client_factory or _default_client_factory,
            stdin or sys.stdin,
            stdout or sys.stdout
        )
    except (OSError, ValueError, ValidationError) as e:
        print(f"error: {e}", file=stderr)
        return EXIT_ERROR
    except NekoinError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"error: {e}", file=stderr)
        return exit_code_for(e)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
