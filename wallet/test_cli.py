import contextlib
import io

import pytest

from . import cli
from .conftest import REALM, failure, keytab_bytes, success
from .errors import TransportError
from .options import WalletOptions
from .remctl import Channel


@pytest.fixture
def stdout(mocker, transport, sink) -> io.BytesIO:
    output = io.BytesIO()
    channel = Channel(transport, sink, stdout=output)

    @contextlib.contextmanager
    def fake_open_channel(options):
        yield channel

    mocker.patch(
        "wallet.cli.default_options",
        return_value=WalletOptions(server="wallet.example.com", realm=REALM),
    )
    mocker.patch("wallet.cli.open_channel", side_effect=fake_open_channel)
    return output


def test_usage_errors(stdout, transport) -> None:
    assert cli.main(["get", "file"]) == 1
    assert cli.main(["get", "file", "foo", "extra"]) == 1
    assert cli.main(["store", "file", "foo", "data", "extra"]) == 1
    assert cli.main(["rekey"]) == 1
    assert cli.main(["-f", "out", "show", "file", "foo"]) == 1
    assert cli.main(["-S", "srvtab", "-f", "out", "get", "file", "foo"]) == 1
    assert cli.main(["-S", "srvtab", "get", "keytab", "foo"]) == 1
    assert transport.commands == []


def test_version(capsys) -> None:
    with pytest.raises(SystemExit) as e:
        cli.main(["-v"])
    assert e.value.code == 0
    assert "wallet" in capsys.readouterr().out


def test_invalid_port(stdout) -> None:
    assert cli.main(["-p", "70000", "show", "file", "foo"]) == 255


def test_passthrough_command(stdout, transport) -> None:
    transport.respond(["wallet", "show", "file", "foo"], success(b"Type: file\n"))

    assert cli.main(["show", "file", "foo"]) == 0

    assert stdout.getvalue() == b"Type: file\n"


def test_passthrough_returns_remote_status(stdout, transport) -> None:
    transport.respond(["wallet", "destroy", "file", "foo"], failure(status=4))
    assert cli.main(["destroy", "file", "foo"]) == 4


def test_command_prefix(stdout, transport) -> None:
    transport.respond(["test", "show", "file", "foo"], success())
    assert cli.main(["-c", "test", "show", "file", "foo"]) == 0


def test_get_file_autocreates(stdout, transport, tmp_path) -> None:
    transport.respond(["wallet", "check", "file", "foo"], success(b"no\n"))
    transport.respond(["wallet", "autocreate", "file", "foo"], success())
    transport.respond(["wallet", "get", "file", "foo"], success(b"contents"))
    target = tmp_path / "foo"

    assert cli.main(["-f", str(target), "get", "file", "foo"]) == 0

    assert target.read_bytes() == b"contents"
    assert [c[1] for c in transport.commands] == [b"check", b"autocreate", b"get"]


def test_get_existing_object_skips_autocreate(stdout, transport, tmp_path) -> None:
    transport.respond(["wallet", "check", "file", "foo"], success(b"yes\n"))
    transport.respond(["wallet", "get", "file", "foo"], success(b"contents"))

    assert cli.main(["-f", str(tmp_path / "foo"), "get", "file", "foo"]) == 0

    assert [c[1] for c in transport.commands] == [b"check", b"get"]


def test_failed_check_exits_with_status(stdout, transport) -> None:
    transport.respond(["wallet", "check", "file", "foo"], failure(status=2))
    assert cli.main(["get", "file", "foo"]) == 2


def test_get_keytab(stdout, transport, tmp_path) -> None:
    data = keytab_bytes(("host/a", 3))
    transport.respond(["wallet", "check", "keytab", "host/a"], success(b"yes\n"))
    transport.respond(["wallet", "get", "keytab", "host/a"], success(data))
    target = tmp_path / "keytab"

    assert cli.main(["-f", str(target), "get", "keytab", "host/a"]) == 0

    assert target.read_bytes() == data


def test_get_keytab_without_data_is_fatal(stdout, transport, tmp_path) -> None:
    transport.respond(["wallet", "check", "keytab", "host/a"], success(b"yes\n"))
    transport.respond(["wallet", "get", "keytab", "host/a"], success())

    assert cli.main(["-f", str(tmp_path / "keytab"), "get", "keytab", "host/a"]) == 255


def test_store_reads_file(stdout, transport, tmp_path) -> None:
    source = tmp_path / "secret"
    source.write_bytes(b"\0binary secret\n")
    transport.respond(["wallet", "check", "file", "foo"], success(b"yes\n"))
    transport.respond(["wallet", "store", "file", "foo", b"\0binary secret\n"], success())

    assert cli.main(["-f", str(source), "store", "file", "foo"]) == 0


def test_store_with_inline_data(stdout, transport) -> None:
    transport.respond(["wallet", "check", "file", "foo"], success(b"yes\n"))
    transport.respond(["wallet", "store", "file", "foo", "inline"], success())

    assert cli.main(["store", "file", "foo", "inline"]) == 0


def test_rekey_command(stdout, transport, tmp_path) -> None:
    keytab = tmp_path / "keytab"
    keytab.write_bytes(keytab_bytes(("host/a", 1), ("host/b", 1)))
    transport.respond(["wallet", "get", "keytab", "host/a@EXAMPLE.COM"], success(keytab_bytes(("host/a", 2))))
    transport.respond(["wallet", "get", "keytab", "host/b@EXAMPLE.COM"], failure())

    assert cli.main(["rekey", str(keytab)]) == 1

    assert (tmp_path / "keytab.old").exists()


def test_rekey_main(stdout, transport, tmp_path) -> None:
    first = tmp_path / "first"
    second = tmp_path / "second"
    first.write_bytes(keytab_bytes(("host/a", 1)))
    second.write_bytes(keytab_bytes(("host/b", 1)))
    transport.respond(["wallet", "get", "keytab", "host/a@EXAMPLE.COM"], success(keytab_bytes(("host/a", 2))))
    transport.respond(["wallet", "get", "keytab", "host/b@EXAMPLE.COM"], success(keytab_bytes(("host/b", 2))))

    assert cli.rekey_main([str(first), str(second)]) == 0


def test_rekey_main_aborted(stdout, transport, tmp_path) -> None:
    keytab = tmp_path / "keytab"
    keytab.write_bytes(keytab_bytes(("host/a", 1)))
    transport.respond(["wallet", "get", "keytab", "host/a@EXAMPLE.COM"], failure())

    assert cli.rekey_main([str(keytab)]) == 255


def test_rekey_main_requires_realm(stdout, mocker, tmp_path) -> None:
    mocker.patch(
        "wallet.cli.default_options", return_value=WalletOptions(server="wallet.example.com")
    )
    assert cli.rekey_main([str(tmp_path / "keytab")]) == 255


def test_open_channel_requires_server() -> None:
    with pytest.raises(TransportError):
        with cli.open_channel(WalletOptions()):
            pass


def test_open_channel_authenticates_user(mocker) -> None:
    ticket_cache = mocker.patch("wallet.cli.TicketCache")
    options = WalletOptions(server="wallet.example.com", port=4373, user="admin")

    with cli.open_channel(options) as channel:
        assert channel.transport.server == "wallet.example.com"
        assert channel.transport.port == 4373

    ticket_cache.assert_called_once_with("admin")
    ticket_cache.return_value.__enter__.assert_called_once()
    ticket_cache.return_value.__exit__.assert_called_once()


def test_rekey_non_utf8_principal(stdout, transport, tmp_path) -> None:
    keytab = tmp_path / "keytab"
    keytab.write_bytes(keytab_bytes(("host/QZZ", 1)).replace(b"QZZ", b"\xffZZ"))
    fresh = keytab_bytes(("host/QZZ", 2)).replace(b"QZZ", b"\xffZZ")
    transport.respond(["wallet", "get", "keytab", b"host/\xffZZ@EXAMPLE.COM"], success(fresh))

    assert cli.main(["rekey", str(keytab)]) == 0

    assert keytab.read_bytes().endswith(fresh[2:])
