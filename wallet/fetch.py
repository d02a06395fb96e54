"""
Retrieval of objects from the wallet server.
"""
import logging
import os
import sys
from typing import BinaryIO, Optional

from . import file as wallet_file
from .errors import CommandError, FileError, NoDataError
from .keytab import merge_keytab
from .remctl import Channel
from .srvtab import write_srvtab

log = logging.getLogger(__name__)


def download_keytab(channel: Channel, prefix: str, name: str) -> bytes:
    """
    Downloads the keytab for a principal and returns its data.
    :param prefix: Command prefix the server expects, usually "wallet".
    :param name: The principal whose keytab to fetch.
    :raises CommandError: The server returned a non-zero status.
    :raises NoDataError: The server reported success but returned nothing.
    """
    result = channel.run_command([prefix, "get", "keytab", name])
    if not result.ok:
        raise CommandError(result.status)
    if not result.payload:
        raise NoDataError("no data returned by wallet server")
    return result.payload


def get_keytab(
    channel: Channel,
    prefix: str,
    name: str,
    file: str,
    srvtab: Optional[str] = None,
    default_realm: str = "",
) -> int:
    """
    Downloads a keytab into file, merging it into any keytab already there, and optionally
    derives a srvtab from it. Returns 0 on success or the server's status.
    """
    try:
        data = download_keytab(channel, prefix, name)
    except CommandError as e:
        return e.status

    if os.path.exists(file):
        tempfile = file + ".new"
        wallet_file.overwrite_file(tempfile, data)
        if srvtab is not None:
            write_srvtab(srvtab, name, tempfile, default_realm)
        merge_keytab(tempfile, file)
        try:
            os.unlink(tempfile)
        except OSError as e:
            raise FileError(
                e.errno, "unlink of temporary keytab file {} failed: {}".format(tempfile, e.strerror)
            ) from e
    else:
        wallet_file.write_file(file, data)
        if srvtab is not None:
            write_srvtab(srvtab, name, file, default_realm)
    return 0


def get_file(
    channel: Channel,
    prefix: str,
    type: str,
    name: str,
    file: Optional[str] = None,
    stdout: Optional[BinaryIO] = None,
) -> int:
    """
    Fetches an object and writes it to file, or to standard output if no file is given.
    An empty object is valid data. Returns 0 on success or the server's status.
    """
    result = channel.run_command([prefix, "get", type, name])
    if not result.ok:
        return result.status

    if file is not None:
        wallet_file.write_file(file, result.payload)
    elif result.payload:
        stream = stdout if stdout is not None else sys.stdout.buffer
        try:
            stream.write(result.payload)
            stream.flush()
        except OSError as e:
            raise FileError(e.errno, "cannot write to standard output") from e
    return 0
