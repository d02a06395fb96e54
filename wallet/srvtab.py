"""
Srvtab support for the wallet client.

A srvtab is the Kerberos v4 service key file. Each record is laid out as:

    name      NUL-terminated, at most 40 bytes
    instance  NUL-terminated, at most 40 bytes
    realm     NUL-terminated, at most 40 bytes
    kvno      1 byte
    key       8 bytes (a DES key)

The wallet always writes kvno 0, which matches how keys are synchronized with the v4 KDC
even though it is not strictly correct.
"""
import logging
from dataclasses import dataclass
from typing import List, Tuple

from . import file as wallet_file
from .errors import KeytabError, SrvtabError
from .keytab import ENCTYPE_DES_CBC_CRC, Principal, resolve

log = logging.getLogger(__name__)

ANAME_SZ = 40
INST_SZ = 40
REALM_SZ = 40
DES_KEY_LENGTH = 8

# Service names whose v5 instance is a host name and whose v4 instance is the short host.
HOST_SERVICES = {
    "host": "rcmd",
    "ftp": "ftp",
    "imap": "imap",
    "pop": "pop",
    "smtp": "smtp",
    "ldap": "ldap",
    "nfs": "nfs",
    "afs": "afs",
}


@dataclass
class SrvtabRecord:
    name: str
    instance: str
    realm: str
    kvno: int
    key: bytes


def _field(value: str, limit: int, what: str) -> bytes:
    data = value.encode("utf-8", "surrogateescape")
    if len(data) > limit or b"\0" in data:
        raise SrvtabError("invalid srvtab {} {!r}".format(what, value))
    return data + b"\0"


def encode_srvtab(record: SrvtabRecord) -> bytes:
    if len(record.key) != DES_KEY_LENGTH:
        raise SrvtabError("invalid DES key length in keytab")
    if not 0 <= record.kvno <= 255:
        raise SrvtabError("srvtab kvno {} out of range".format(record.kvno))
    return (
        _field(record.name, ANAME_SZ, "name")
        + _field(record.instance, INST_SZ, "instance")
        + _field(record.realm, REALM_SZ, "realm")
        + bytes([record.kvno])
        + record.key
    )


def decode_srvtab(data: bytes) -> List[SrvtabRecord]:
    records = []
    offset = 0
    while offset < len(data):
        fields = []
        for limit in (ANAME_SZ, INST_SZ, REALM_SZ):
            end = data.find(b"\0", offset, offset + limit + 1)
            if end < 0:
                raise SrvtabError("malformed srvtab at offset {}".format(offset))
            fields.append(data[offset:end].decode("utf-8", "surrogateescape"))
            offset = end + 1
        if offset + 1 + DES_KEY_LENGTH > len(data):
            raise SrvtabError("srvtab truncated")
        kvno = data[offset]
        key = data[offset + 1:offset + 1 + DES_KEY_LENGTH]
        offset += 1 + DES_KEY_LENGTH
        records.append(SrvtabRecord(fields[0], fields[1], fields[2], kvno, key))
    return records


def convert_principal(principal: Principal) -> Tuple[str, str, str]:
    """Converts a Kerberos v5 principal to its v4 (name, instance, realm)."""
    if len(principal.components) > 2:
        raise SrvtabError("cannot convert principal {} to Kerberos v4".format(principal))
    name = principal.primary
    instance = principal.instance
    if name in HOST_SERVICES and instance:
        name = HOST_SERVICES[name]
        instance = instance.split(".", 1)[0]
    if len(name) > ANAME_SZ or len(instance) > INST_SZ or len(principal.realm) > REALM_SZ:
        raise SrvtabError("principal {} too long for Kerberos v4".format(principal))
    return name, instance, principal.realm


def write_srvtab(srvtab: str, principal: str, keytab: str, default_realm: str = "") -> None:
    """Writes the des-cbc-crc key for principal from keytab out as a srvtab."""
    princ = Principal.parse(principal, default_realm)
    key = None
    try:
        with resolve(keytab) as kt:
            for entry in kt.entries():
                if entry.principal == princ and entry.enctype == ENCTYPE_DES_CBC_CRC:
                    # The highest kvno wins, as krb5_kt_get_entry does for kvno 0.
                    if key is None or entry.kvno >= key[0]:
                        key = (entry.kvno, entry.key)
    except KeytabError as e:
        raise SrvtabError("error opening keytab {}: {}".format(keytab, e)) from e
    if key is None:
        raise SrvtabError("error reading DES key from keytab {}".format(keytab))

    name, instance, realm = convert_principal(princ)
    data = encode_srvtab(SrvtabRecord(name, instance, realm, 0, key[1]))
    wallet_file.write_file(srvtab, data)
    log.info("Wrote srvtab %s for %s", srvtab, princ)
