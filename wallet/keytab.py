"""
Keytab handling for the wallet client.

Reads and writes the MIT keytab file format (version 0x0502, and 0x0501 for reading),
enumerates the principals held in a keytab, and merges newly downloaded keys into an
existing one.

Format reference: https://web.mit.edu/kerberos/krb5-latest/doc/formats/keytab_file_format.html
"""
import io
import logging
import os
import struct
import time
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import KeytabError

log = logging.getLogger(__name__)

KEYTAB_MAGIC = 5
KEYTAB_VERSION = 2
KRB5_NT_PRINCIPAL = 1
ENCTYPE_DES_CBC_CRC = 1

# Keytabs living only in this process, keyed by their MEMORY: residual. Entries stay until
# the keytab is destroyed.
_memory_keytabs: Dict[str, List["KeytabEntry"]] = {}

_CONTROL_ESCAPES = {"\n": "\\n", "\t": "\\t", "\b": "\\b", "\0": "\\0"}
_CONTROL_UNESCAPES = {escape[1]: char for char, escape in _CONTROL_ESCAPES.items()}


@dataclass(frozen=True)
class Principal:
    components: Tuple[str, ...]
    realm: str = ""

    @property
    def primary(self) -> str:
        return self.components[0] if self.components else ""

    @property
    def instance(self) -> str:
        return "/".join(self.components[1:])

    @staticmethod
    def parse(name: str, default_realm: str = "") -> "Principal":
        """Parses primary/instance@REALM, honouring backslash escapes."""
        components = []
        current: List[str] = []
        realm = None
        escaped = False
        for char in name:
            if escaped:
                current.append(_CONTROL_UNESCAPES.get(char, char))
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == "/" and realm is None:
                components.append("".join(current))
                current = []
            elif char == "@" and realm is None:
                components.append("".join(current))
                current = []
                realm = ""
            else:
                current.append(char)
        if escaped:
            raise KeytabError("trailing backslash in principal {}".format(name))
        if realm is None:
            components.append("".join(current))
            realm = default_realm
        else:
            realm = "".join(current)
        if not components or not components[0]:
            raise KeytabError("invalid principal name {}".format(name))
        return Principal(tuple(components), realm)

    def unparse(self, include_realm: bool = True) -> str:
        def quote(part: str, specials: str) -> str:
            out = part.replace("\\", "\\\\")
            for char in specials:
                out = out.replace(char, "\\" + char)
            for char, escape in _CONTROL_ESCAPES.items():
                out = out.replace(char, escape)
            return out

        name = "/".join(quote(c, "/@") for c in self.components)
        if include_realm and self.realm:
            name += "@" + quote(self.realm, "@")
        return name

    def __str__(self) -> str:
        return self.unparse()


@dataclass
class KeytabEntry:
    principal: Principal
    kvno: int
    enctype: int
    key: bytes
    timestamp: int = field(default_factory=lambda: int(time.time()))
    name_type: int = KRB5_NT_PRINCIPAL


class _Reader:
    def __init__(self, data: bytes, byteorder: str) -> None:
        self._buf = io.BytesIO(data)
        self._order = ">" if byteorder == "big" else "="
        self._size = len(data)

    def tell(self) -> int:
        return self._buf.tell()

    def seek(self, pos: int) -> None:
        self._buf.seek(pos)

    def remaining(self) -> int:
        return self._size - self._buf.tell()

    def read(self, length: int) -> bytes:
        data = self._buf.read(length)
        if len(data) != length:
            raise KeytabError("keytab truncated at offset {}".format(self.tell()))
        return data

    def unpack(self, fmt: str) -> int:
        fmt = self._order + fmt
        (value,) = struct.unpack(fmt, self.read(struct.calcsize(fmt)))
        return int(value)

    def counted(self) -> bytes:
        return self.read(self.unpack("H"))


def _decode_entry(reader: _Reader, version: int, end: int) -> KeytabEntry:
    count = reader.unpack("H")
    if version == 1:
        count -= 1
    realm = reader.counted().decode("utf-8", "surrogateescape")
    components = tuple(reader.counted().decode("utf-8", "surrogateescape") for _ in range(count))
    name_type = reader.unpack("I") if version == 2 else KRB5_NT_PRINCIPAL
    timestamp = reader.unpack("I")
    kvno = reader.unpack("B")
    enctype = reader.unpack("H")
    key = reader.counted()
    if end - reader.tell() >= 4:
        extended = reader.unpack("I")
        if extended != 0:
            kvno = extended
    reader.seek(end)
    return KeytabEntry(Principal(components, realm), kvno, enctype, key, timestamp, name_type)


def decode_keytab(data: bytes) -> Iterator[KeytabEntry]:
    """Yields the entries of a keytab file image in file order, skipping holes."""
    if len(data) < 2 or data[0] != KEYTAB_MAGIC or data[1] not in (1, 2):
        raise KeytabError("unrecognized keytab format")
    version = data[1]
    reader = _Reader(data, "big" if version == 2 else "native")
    reader.seek(2)
    while reader.remaining() >= 4:
        length = reader.unpack("i")
        if length == 0:
            break
        if length < 0:
            reader.read(-length)
            continue
        end = reader.tell() + length
        if end > len(data):
            raise KeytabError("keytab entry overruns end of file")
        yield _decode_entry(reader, version, end)


def _counted(data: bytes) -> bytes:
    return struct.pack(">H", len(data)) + data


def encode_entry(entry: KeytabEntry) -> bytes:
    """Encodes one length-prefixed version 2 record."""
    record = struct.pack(">H", len(entry.principal.components))
    record += _counted(entry.principal.realm.encode("utf-8", "surrogateescape"))
    for component in entry.principal.components:
        record += _counted(component.encode("utf-8", "surrogateescape"))
    record += struct.pack(">IIBH", entry.name_type, entry.timestamp, entry.kvno & 0xFF, entry.enctype)
    record += _counted(entry.key)
    record += struct.pack(">I", entry.kvno)
    return struct.pack(">i", len(record)) + record


def encode_keytab(entries: List[KeytabEntry]) -> bytes:
    return bytes([KEYTAB_MAGIC, KEYTAB_VERSION]) + b"".join(encode_entry(e) for e in entries)


class KeytabHandle:
    """An open keytab, backed by a file or by process memory.

    Use as a context manager so the handle is closed however the block exits.
    """

    def __init__(self, kind: str, residual: str) -> None:
        self.kind = kind
        self.residual = residual
        self._closed = False

    def __repr__(self) -> str:
        return "{}:{}".format(self.kind, self.residual)

    def __enter__(self) -> "KeytabHandle":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise KeytabError("keytab {!r} is closed".format(self))

    def _read_image(self) -> Optional[bytes]:
        try:
            with open(self.residual, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise KeytabError("cannot read keytab {}: {}".format(self.residual, e)) from e

    def entries(self) -> Iterator[KeytabEntry]:
        """Sequential cursor over every entry. A missing file is an error."""
        self._check_open()
        if self.kind == "MEMORY":
            if self.residual not in _memory_keytabs:
                raise KeytabError("memory keytab {} not found".format(self.residual))
            yield from list(_memory_keytabs[self.residual])
            return
        data = self._read_image()
        if data is None:
            raise KeytabError("keytab {} does not exist".format(self.residual))
        yield from decode_keytab(data)

    def add_entry(self, entry: KeytabEntry) -> None:
        self._check_open()
        if self.kind == "MEMORY":
            _memory_keytabs.setdefault(self.residual, []).append(entry)
            return
        record = encode_entry(entry)
        try:
            if not os.path.exists(self.residual):
                fd = os.open(self.residual, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
                with os.fdopen(fd, "wb") as f:
                    f.write(bytes([KEYTAB_MAGIC, KEYTAB_VERSION]) + record)
                return
            with open(self.residual, "r+b") as f:
                header = f.read(2)
                if not header:
                    f.write(bytes([KEYTAB_MAGIC, KEYTAB_VERSION]) + record)
                    return
                if len(header) != 2 or header[0] != KEYTAB_MAGIC or header[1] not in (1, 2):
                    raise KeytabError("unrecognized keytab format in {}".format(self.residual))
                if header[1] != KEYTAB_VERSION:
                    raise KeytabError("cannot add entries to version 1 keytab {}".format(self.residual))
                f.seek(0, os.SEEK_END)
                f.write(record)
        except OSError as e:
            raise KeytabError("cannot write to keytab {}: {}".format(self.residual, e)) from e

    def destroy(self) -> None:
        """Removes the keytab and all of its keys, then closes the handle."""
        self._check_open()
        try:
            if self.kind == "MEMORY":
                _memory_keytabs.pop(self.residual, None)
                return
            try:
                os.unlink(self.residual)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise KeytabError("cannot remove keytab {}: {}".format(self.residual, e)) from e
        finally:
            self.close()

    def close(self) -> None:
        self._closed = True


def resolve(name: str) -> KeytabHandle:
    """Opens a keytab by name: FILE:path, WRFILE:path, MEMORY:name or a plain path."""
    kind, sep, residual = name.partition(":")
    if not sep or kind not in ("FILE", "WRFILE", "MEMORY"):
        return KeytabHandle("FILE", name)
    if not residual:
        raise KeytabError("empty keytab name {}".format(name))
    return KeytabHandle(kind, residual)


def keytab_principals(file: str, realm: str) -> List[Principal]:
    """Returns each distinct principal in the keytab that belongs to realm, in file order."""
    names: Dict[Principal, None] = {}
    with resolve(file) as keytab:
        for entry in keytab.entries():
            if entry.principal.realm != realm:
                continue
            names.setdefault(entry.principal, None)
    return list(names)


def merge_keytab(newfile: str, file: str) -> int:
    """Adds every key in newfile to file and returns how many were added.

    Old kvnos are never cleaned up and duplicate kvnos are added again as-is.
    """
    count = 0
    with resolve(newfile) as temp, resolve("WRFILE:" + file) as old:
        for entry in temp.entries():
            old.add_entry(entry)
            count += 1
    log.info("Merged %d keys from %s into %s", count, newfile, file)
    return count


def read_keytab(data: bytes) -> List[KeytabEntry]:
    return list(decode_keytab(data))
