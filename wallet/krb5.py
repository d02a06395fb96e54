"""
Kerberos ticket handling for the -u option.

The wallet clients can authenticate as a given user before talking to the server. This is
done by running kinit against a private credential cache and destroying it afterwards.
"""
import logging
import os
import subprocess
import tempfile
from typing import Dict, Optional

from .errors import WalletError

log = logging.getLogger(__name__)


class KerberosError(WalletError):
    pass


class TicketCache:
    """Context manager that obtains tickets for a principal in a private cache, points
    KRB5CCNAME at it for the duration, and destroys it on exit."""

    def __init__(self, principal: str, environ: Optional[Dict[str, str]] = None) -> None:
        self.principal = principal
        self._environ = environ if environ is not None else os.environ
        self._saved: Optional[str] = None
        self._cache: Optional[str] = None

    def __enter__(self) -> "TicketCache":
        fd, path = tempfile.mkstemp(prefix="krb5cc_wallet_")
        os.close(fd)
        self._cache = "FILE:" + path
        self._saved = self._environ.get("KRB5CCNAME")
        self._environ["KRB5CCNAME"] = self._cache
        try:
            kinit(self.principal)
        except KerberosError:
            self._restore()
            raise
        return self

    def __exit__(self, *args: object) -> None:
        try:
            kdestroy()
        finally:
            self._restore()

    def _restore(self) -> None:
        if self._saved is None:
            self._environ.pop("KRB5CCNAME", None)
        else:
            self._environ["KRB5CCNAME"] = self._saved
        if self._cache is not None:
            path = self._cache[len("FILE:"):]
            if os.path.exists(path):
                os.unlink(path)
            self._cache = None


def kinit(principal: str) -> None:
    """
    Obtains tickets for the principal, prompting for its password on the terminal.
    :param principal: The name of the principal to authenticate as.
    """
    log.info("Authenticating as %s", principal)
    try:
        result = subprocess.run(["kinit", principal])
    except OSError as e:
        raise KerberosError("cannot run kinit: {}".format(e)) from e
    if result.returncode != 0:
        raise KerberosError("Failed ({}) to authenticate as {}".format(result.returncode, principal))


def kdestroy() -> None:
    """Erases the current credential cache."""
    log.info("Erasing credential cache")
    try:
        result = subprocess.run(["kdestroy"], stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except OSError as e:
        raise KerberosError("cannot destroy temporary ticket cache: {}".format(e)) from e
    if result.returncode != 0:
        raise KerberosError(
            "Failed ({}) to erase credential cache: {}".format(
                result.returncode, result.stderr.decode("utf-8", "replace").strip()
            )
        )
