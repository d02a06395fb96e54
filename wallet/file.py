"""
Durable storage of secret material on local disk.

Every function here either leaves the target file holding exactly the requested bytes or
raises FileError. Nothing is retried and nothing is swallowed: losing track of a partially
written keytab means losing keys.
"""
import io
import logging
import os
import stat
import sys

from .errors import FileError


log = logging.getLogger(__name__)

STDIN_NAME = "-"


def _write_all(fd: int, name: str, data: bytes) -> None:
    if not data:
        return
    try:
        written = os.write(fd, data)
    except OSError as e:
        raise FileError(e.errno, "write to {} failed: {}".format(name, e.strerror)) from e
    if written != len(data):
        raise FileError("write to {} truncated".format(name))


def _close(fd: int, name: str) -> None:
    try:
        os.close(fd)
    except OSError as e:
        raise FileError(
            e.errno, "close of {} failed (file probably truncated): {}".format(name, e.strerror)
        ) from e


def overwrite_file(name: str, data: bytes) -> None:
    """Write data to name, replacing any existing file by that name.

    The new file is created exclusively with mode 0600. If something recreates the file
    between the unlink and the create, that is treated as fatal rather than retried.
    """
    if os.path.lexists(name):
        try:
            os.unlink(name)
        except OSError as e:
            raise FileError(
                e.errno, "unable to delete existing file {}: {}".format(name, e.strerror)
            ) from e
    try:
        fd = os.open(name, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except OSError as e:
        raise FileError(e.errno, "open of {} failed: {}".format(name, e.strerror)) from e
    try:
        _write_all(fd, name, data)
    except FileError:
        os.close(fd)
        raise
    _close(fd, name)


def append_file(name: str, data: bytes) -> None:
    """Append data to an existing file. The file is never created."""
    try:
        fd = os.open(name, os.O_WRONLY | os.O_APPEND)
    except OSError as e:
        raise FileError(e.errno, "open of {} failed: {}".format(name, e.strerror)) from e
    try:
        _write_all(fd, name, data)
    except FileError:
        os.close(fd)
        raise
    _close(fd, name)


def write_file(name: str, data: bytes) -> None:
    """Atomically replace name with data.

    The data goes to name.new first. If name already exists, it is hard-linked to name.bak
    (replacing any older backup) before name.new is renamed over it, so a crash at any point
    leaves either the old file or the new one in place, never a truncated one.
    """
    temp = name + ".new"
    backup = name + ".bak"
    overwrite_file(temp, data)
    if os.path.exists(name):
        if os.path.lexists(backup):
            try:
                os.unlink(backup)
            except OSError as e:
                raise FileError(
                    e.errno, "unlink of old backup {} failed: {}".format(backup, e.strerror)
                ) from e
        try:
            os.link(name, backup)
        except OSError as e:
            raise FileError(
                e.errno, "link of {} to {} failed: {}".format(name, backup, e.strerror)
            ) from e
    try:
        os.rename(temp, name)
    except OSError as e:
        raise FileError(
            e.errno, "rename of {} to {} failed: {}".format(temp, name, e.strerror)
        ) from e
    log.debug("Wrote %d bytes to %s", len(data), name)


def _read_fd(fd: int, size_hint: int) -> bytes:
    contents = bytearray()
    chunk = max(size_hint, io.DEFAULT_BUFFER_SIZE)
    while True:
        try:
            data = os.read(fd, chunk)
        except InterruptedError:
            continue
        except OSError as e:
            raise FileError(e.errno, "cannot read from file: {}".format(e.strerror)) from e
        if not data:
            break
        contents += data
        # Unknown lengths (pipes, terminals) get geometrically larger reads.
        if size_hint == 0:
            chunk *= 2
    return bytes(contents)


def read_file(name: str) -> bytes:
    """Return the full contents of name, or of standard input if name is "-"."""
    if name == STDIN_NAME:
        fd = sys.stdin.fileno()
        try:
            st = os.fstat(fd)
        except OSError:
            st = None
        size = st.st_size if st is not None and stat.S_ISREG(st.st_mode) else 0
        return _read_fd(fd, size)

    try:
        fd = os.open(name, os.O_RDONLY)
    except OSError as e:
        raise FileError(e.errno, "cannot open file {}: {}".format(name, e.strerror)) from e
    try:
        try:
            size = os.fstat(fd).st_size
        except OSError as e:
            raise FileError(e.errno, "cannot stat file {}: {}".format(name, e.strerror)) from e
        return _read_fd(fd, size)
    finally:
        os.close(fd)
