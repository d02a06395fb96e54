"""
Rekeying of an existing keytab.

Every principal of the local realm found in the keytab gets fresh keys from the wallet
server. The new keys are collected in <keytab>.new and then merged into the keytab, so the
old keys stay usable until the services pick up the new ones.

If some principals fail after others succeeded, the keys that were fetched are still merged,
because the server has already rotated them. A copy of the untouched keytab is left in
<keytab>.old first so the previous state can be recovered.
"""
import logging
import os
from dataclasses import dataclass, field
from typing import List, Union

from . import file as wallet_file
from .errors import (
    CommandError,
    FileError,
    NoDataError,
    NoRekeyableError,
    RekeyAbortedError,
    WalletError,
)
from .fetch import download_keytab
from .keytab import Principal, keytab_principals, merge_keytab
from .remctl import Channel

log = logging.getLogger(__name__)


@dataclass
class Fetched:
    principal: Principal
    data: bytes


@dataclass
class Failed:
    principal: Principal
    error: WalletError


RekeyOutcome = Union[Fetched, Failed]


@dataclass
class RekeyResult:
    file: str
    outcomes: List[RekeyOutcome] = field(default_factory=list)
    backup: str = ""

    @property
    def fetched(self) -> List[Principal]:
        return [o.principal for o in self.outcomes if isinstance(o, Fetched)]

    @property
    def failed(self) -> List[Principal]:
        return [o.principal for o in self.outcomes if isinstance(o, Failed)]

    @property
    def success(self) -> bool:
        return not self.failed


def _fetch(channel: Channel, prefix: str, principal: Principal) -> RekeyOutcome:
    try:
        return Fetched(principal, download_keytab(channel, prefix, principal.unparse()))
    except (CommandError, NoDataError) as e:
        return Failed(principal, e)


def _remove(name: str) -> None:
    try:
        os.unlink(name)
    except OSError as e:
        raise FileError(
            e.errno, "unlink of temporary keytab file {} failed: {}".format(name, e.strerror)
        ) from e


def rekey_keytab(channel: Channel, prefix: str, file: str, realm: str) -> RekeyResult:
    """
    Rekeys every principal of realm in the keytab file.

    :raises RekeyAbortedError: The first principals failed before any succeeded. The keytab
                               is unchanged.
    :raises NoRekeyableError: No principals of the realm were found. The keytab is unchanged.
    :return: The result, whose success flag is false if some principals could not be rekeyed.
    """
    tempfile = file + ".new"
    result = RekeyResult(file)
    rekeyed = False

    if os.path.exists(file):
        principals = keytab_principals(file, realm)
    else:
        principals = []
    log.info("Rekeying %d principals in %s", len(principals), file)

    for principal in principals:
        outcome = _fetch(channel, prefix, principal)
        result.outcomes.append(outcome)
        if isinstance(outcome, Failed):
            log.warning("error rekeying for principal %s", principal.unparse(include_realm=False))
            if not rekeyed:
                raise RekeyAbortedError("aborting, keytab unchanged")
            continue
        if rekeyed:
            wallet_file.append_file(tempfile, outcome.data)
        else:
            # A leftover .new from an interrupted run is replaced, never appended to.
            wallet_file.overwrite_file(tempfile, outcome.data)
            rekeyed = True

    if not rekeyed:
        raise NoRekeyableError("no rekeyable principals found")

    if not os.path.exists(file):
        try:
            os.link(tempfile, file)
        except OSError as e:
            raise FileError(
                e.errno, "link of {} to {} failed: {}".format(tempfile, file, e.strerror)
            ) from e
    else:
        if not result.success:
            backup = file + ".old"
            wallet_file.overwrite_file(backup, wallet_file.read_file(file))
            result.backup = backup
            log.warning("partial failure to rekey keytab %s, old keytab left in %s", file, backup)
        merge_keytab(tempfile, file)

    # On a fatal error above the fetched keys stay in the .new file for recovery.
    _remove(tempfile)
    return result
