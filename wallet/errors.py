"""
Exceptions raised by the wallet client.

Internal components raise these and never exit the process themselves; the
command-line boundary in `wallet.cli` decides how each maps to an exit code.
"""


class WalletError(Exception):
    pass


class TransportError(WalletError):
    """The remctl transport could not be opened or refused a command."""

    pass


class CommandError(WalletError):
    """A remote command returned a non-zero status where success was required."""

    def __init__(self, status: int, message: str = "") -> None:
        self.status = status
        super().__init__(message or "remote command failed with status {}".format(status))


class NoDataError(WalletError):
    """The server reported success but returned no data."""

    pass


class KeytabError(WalletError):
    pass


class SrvtabError(WalletError):
    pass


class RekeyAbortedError(WalletError):
    pass


class NoRekeyableError(WalletError):
    pass


class FileError(OSError):
    """Any failure of a durable store operation on local files."""

    pass
