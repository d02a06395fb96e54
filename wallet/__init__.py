__version__ = "1.5"

from .errors import (
    CommandError,
    FileError,
    KeytabError,
    NoDataError,
    NoRekeyableError,
    RekeyAbortedError,
    SrvtabError,
    TransportError,
    WalletError,
)
from .fetch import download_keytab, get_file, get_keytab
from .file import append_file, overwrite_file, read_file, write_file
from .keytab import KeytabEntry, Principal, keytab_principals, merge_keytab, resolve
from .remctl import Channel, CommandResult
from .rekey import RekeyResult, rekey_keytab
from .transport import BaseTransport, OutputEvent, OutputType, RemctlTransport

__all__ = [
    "BaseTransport",
    "Channel",
    "CommandError",
    "CommandResult",
    "FileError",
    "KeytabEntry",
    "KeytabError",
    "NoDataError",
    "NoRekeyableError",
    "OutputEvent",
    "OutputType",
    "Principal",
    "RekeyAbortedError",
    "RekeyResult",
    "RemctlTransport",
    "SrvtabError",
    "TransportError",
    "WalletError",
    "append_file",
    "download_keytab",
    "get_file",
    "get_keytab",
    "keytab_principals",
    "merge_keytab",
    "overwrite_file",
    "read_file",
    "rekey_keytab",
    "resolve",
    "write_file",
]
