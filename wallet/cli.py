"""
Command-line entry points for the wallet clients.

    wallet [options] <command> <type> <name> [<arg> ...]
    wallet [options] rekey <keytab>
    wallet-rekey [options] [<keytab> ...]

This is the only place that turns errors into exit statuses: 0 on success, the server's status
if a command failed remotely, 1 for usage errors and partially failed rekeys, and 255 for any
other fatal error.
"""
import argparse
import contextlib
import logging
import os
import sys
from typing import Iterator, List, Optional

from . import __version__
from .errors import CommandError, TransportError, WalletError
from .fetch import get_file, get_keytab
from .file import STDIN_NAME, read_file
from .krb5 import TicketCache
from .messages import PROGRAM_NAME, DiagnosticSink
from .options import WalletOptions, default_options
from .rekey import rekey_keytab
from .remctl import ERROR_STATUS, Channel
from .transport import RemctlTransport, Word

log = logging.getLogger(__name__)

DEFAULT_KEYTAB = "/etc/krb5.keytab"
USAGE_EXIT = 1
PARTIAL_FAILURE_EXIT = 1

log_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging() -> None:
    log_level = os.getenv("WALLET_LOG_LEVEL", "WARNING").upper()
    if log_level not in log_levels:
        log_level = "WARNING"
    logging.basicConfig(
        format="{}: %(message)s".format(PROGRAM_NAME), level=log_level, stream=sys.stderr
    )


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", dest="type", help="Command prefix to use (default: wallet)")
    parser.add_argument("-k", dest="principal", help="Kerberos principal of the server")
    parser.add_argument(
        "-p", dest="port", type=int, help="Port of server (if zero, remctl default)"
    )
    parser.add_argument("-s", dest="server", help="Server hostname")
    parser.add_argument("-u", dest="user", help="Authenticate as <user> before running command")
    parser.add_argument(
        "-v", action="version", version="{} {}".format(PROGRAM_NAME, __version__)
    )


def wallet_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wallet", description="Client for the wallet system")
    _add_common_arguments(parser)
    parser.add_argument("-f", dest="file", help="For the get command, output file (default: stdout)")
    parser.add_argument("-S", dest="srvtab", help="For the get keytab command, srvtab output file")
    parser.add_argument("command", nargs="+", help="<command> <type> <name> [<arg> ...]")
    return parser


def rekey_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wallet-rekey", description="Rekey every local principal in keytabs"
    )
    _add_common_arguments(parser)
    parser.add_argument("files", nargs="*", help="Keytabs to rekey (default: {})".format(DEFAULT_KEYTAB))
    return parser


def options_from_args(args: argparse.Namespace) -> WalletOptions:
    options = default_options()
    if args.type:
        options.type = args.type
    if args.principal:
        options.principal = args.principal
    if args.port is not None:
        if args.port <= 0 or args.port > 65535:
            raise WalletError("invalid port number {}".format(args.port))
        options.port = args.port
    if args.server:
        options.server = args.server
    if args.user:
        options.user = args.user
    return options


@contextlib.contextmanager
def open_channel(options: WalletOptions) -> Iterator[Channel]:
    """Authenticates if a user was requested and yields a channel to the wallet server."""
    if options.server is None:
        raise TransportError("no server specified in krb5.conf or with -s")
    with contextlib.ExitStack() as stack:
        if options.user is not None:
            stack.enter_context(TicketCache(options.user))
        transport = RemctlTransport(options.server, options.port, options.principal)
        channel = Channel(transport, DiagnosticSink(PROGRAM_NAME))
        stack.callback(channel.close)
        yield channel


def _realm(options: WalletOptions) -> str:
    if not options.realm:
        raise WalletError("cannot determine the default realm; set default_realm in krb5.conf")
    return options.realm


def _usage(parser: argparse.ArgumentParser, message: str) -> int:
    parser.print_usage(sys.stderr)
    log.error("%s", message)
    return USAGE_EXIT


def run_wallet(channel: Channel, options: WalletOptions, args: argparse.Namespace) -> int:
    command = args.command
    prefix = options.type

    if command[0] in ("get", "store"):
        if not channel.object_exists(prefix, command[1], command[2]):
            channel.object_autocreate(prefix, command[1], command[2])

    if command[0] == "get":
        if command[1] == "keytab" and args.file is not None:
            return get_keytab(channel, prefix, command[2], args.file, args.srvtab, options.realm)
        return get_file(channel, prefix, command[1], command[2], args.file)

    if command[0] == "rekey":
        result = rekey_keytab(channel, prefix, command[1], _realm(options))
        return 0 if result.success else PARTIAL_FAILURE_EXIT

    words: List[Word] = [prefix] + command
    if command[0] == "store" and len(command) < 4:
        words.append(read_file(args.file if args.file is not None else STDIN_NAME))
    return channel.run_command(words, capture=False).status


def main(argv: Optional[List[str]] = None) -> int:
    parser = wallet_parser()
    args = parser.parse_args(argv)
    configure_logging()

    command = args.command
    if command[0] == "rekey":
        if len(command) != 2:
            return _usage(parser, "rekey takes exactly one keytab")
    elif len(command) < 3:
        return _usage(parser, "a command, type and name are required")
    if command[0] == "get" and len(command) > 3:
        return _usage(parser, "too many arguments")
    if command[0] == "store" and len(command) > 4:
        return _usage(parser, "too many arguments")
    if args.file is not None and command[0] not in ("get", "store"):
        return _usage(parser, "-f only supported for get and store")
    if args.srvtab is not None:
        if command[0] != "get" or command[1] != "keytab":
            return _usage(parser, "-S only supported for get keytab")
        if args.file is None:
            return _usage(parser, "-S option requires -f also be used")

    try:
        options = options_from_args(args)
        with open_channel(options) as channel:
            return run_wallet(channel, options, args)
    except CommandError as e:
        return e.status
    except (WalletError, OSError) as e:
        log.error("%s", e)
        return ERROR_STATUS


def rekey_main(argv: Optional[List[str]] = None) -> int:
    args = rekey_parser().parse_args(argv)
    configure_logging()

    files = args.files or [DEFAULT_KEYTAB]
    try:
        options = options_from_args(args)
        realm = _realm(options)
        with open_channel(options) as channel:
            for file in files:
                result = rekey_keytab(channel, options.type, file, realm)
                if not result.success:
                    return PARTIAL_FAILURE_EXIT
    except (WalletError, OSError) as e:
        log.error("%s", e)
        return ERROR_STATUS
    return 0


def wallet() -> None:
    sys.exit(main())


def wallet_rekey() -> None:
    sys.exit(rekey_main())
