import os
import subprocess

import pytest

from .krb5 import KerberosError, TicketCache


def completed(returncode: int) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess([], returncode, stdout=b"", stderr=b"")


def test_ticket_cache(mocker) -> None:
    seen = []

    def run(args, **kwargs):
        seen.append((args[0], environ.get("KRB5CCNAME")))
        return completed(0)

    mocker.patch("wallet.krb5.subprocess.run", side_effect=run)
    environ = {"KRB5CCNAME": "FILE:/tmp/original"}

    with TicketCache("admin/user", environ=environ) as cache:
        assert environ["KRB5CCNAME"] != "FILE:/tmp/original"
        path = environ["KRB5CCNAME"][len("FILE:"):]
        assert os.path.exists(path)
        assert cache.principal == "admin/user"

    assert environ == {"KRB5CCNAME": "FILE:/tmp/original"}
    assert not os.path.exists(path)
    assert [name for name, _ in seen] == ["kinit", "kdestroy"]
    assert seen[0][1] == seen[1][1] == "FILE:" + path


def test_kinit_failure_restores_environment(mocker) -> None:
    mocker.patch("wallet.krb5.subprocess.run", return_value=completed(1))
    environ = {}

    with pytest.raises(KerberosError):
        with TicketCache("user", environ=environ):
            pass

    assert environ == {}


def test_kdestroy_failure_is_reported(mocker) -> None:
    mocker.patch("wallet.krb5.subprocess.run", side_effect=[completed(0), completed(1)])
    environ = {}

    with pytest.raises(KerberosError):
        with TicketCache("user", environ=environ):
            pass

    assert environ == {}


def test_missing_kinit(mocker) -> None:
    mocker.patch("wallet.krb5.subprocess.run", side_effect=FileNotFoundError(2, "No such file"))
    with pytest.raises(KerberosError):
        with TicketCache("user", environ={}):
            pass
