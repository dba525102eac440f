import stat

import pytest

from mailhost_installer.errors import CommandError, ConfigError
from mailhost_installer.lib.relay import (
    PROVIDERS,
    RELAY_KEYS,
    configure_relay,
    relay_status,
    remove_relay,
    resolve_provider,
    send_relay_test,
)


def test_resolve_provider_presets():
    assert resolve_provider("ses", None, None).host == "email-smtp.us-east-1.amazonaws.com"
    gmail = resolve_provider("gmail", None, 2525)
    assert (gmail.host, gmail.port) == ("smtp.gmail.com", 2525)
    assert "App Password" in gmail.note
    assert all(p.port == 587 for p in PROVIDERS.values())


def test_resolve_provider_custom():
    p = resolve_provider("custom", "relay.example.net", None)
    assert (p.host, p.port) == ("relay.example.net", 587)
    with pytest.raises(ConfigError):
        resolve_provider("custom", None, None)
    with pytest.raises(ConfigError):
        resolve_provider("postmark", None, None)


def test_configure_relay(runner, root_paths):
    configure_relay(
        root_paths,
        host="smtp.sendgrid.net",
        port=587,
        user="apikey",
        password="SG.secret",
        rewrite_from="noreply@example.com",
    )

    sasl = root_paths.sasl_passwd
    assert sasl.read_text() == "[smtp.sendgrid.net]:587 apikey:SG.secret\n"
    assert stat.S_IMODE(sasl.stat().st_mode) == 0o600
    assert ["chown", "root:postfix", str(sasl)] in runner.calls
    assert ["postmap", str(sasl)] in runner.calls
    assert "REPLACE From: noreply@example.com" in root_paths.header_checks.read_text()

    postconf = [c[2] for c in runner.find("postconf", "-e")]
    assert "relayhost = [smtp.sendgrid.net]:587" in postconf
    assert "smtp_sasl_auth_enable = yes" in postconf
    assert "smtp_header_checks = regexp:/etc/postfix/header_checks" in postconf
    assert not any(root_paths.root in c for c in postconf if c.startswith("smtp_header_checks"))
    assert runner.ran("postfix", "reload")


def test_configure_relay_secret_not_logged(runner, root_paths, caplog):
    configure_relay(root_paths, host="smtp.gmail.com", port=587, user="me@gmail.com", password="app-pass-xyz")
    assert "app-pass-xyz" not in caplog.text
    assert not root_paths.header_checks.exists()


def test_configure_relay_requires_credentials(runner, root_paths):
    with pytest.raises(ConfigError):
        configure_relay(root_paths, host="smtp.gmail.com", port=587, user="me@gmail.com", password="")
    assert runner.calls == []


def test_configure_relay_fails_on_bad_config(runner, root_paths):
    runner.on("postfix", "check", returncode=1, stderr="fatal")
    with pytest.raises(CommandError):
        configure_relay(root_paths, host="smtp.gmail.com", port=587, user="me@gmail.com", password="pw")
    assert not runner.ran("postfix", "reload")


def test_relay_status_reports_missing_credentials(runner, root_paths):
    runner.on("postconf", "-h", "relayhost", stdout="[smtp.gmail.com]:587\n")
    status = relay_status(root_paths)
    assert status.configured
    assert status.credentials is False
    assert list(status.settings) == RELAY_KEYS
    assert status.settings["relayhost"] == "[smtp.gmail.com]:587"


def test_remove_relay(runner, root_paths):
    configure_relay(
        root_paths,
        host="smtp.gmail.com",
        port=587,
        user="me@gmail.com",
        password="pw",
        rewrite_from="noreply@example.com",
    )
    db = root_paths.sasl_passwd.with_name("sasl_passwd.db")
    db.write_text("")
    runner.calls.clear()

    remove_relay(root_paths)

    assert runner.find("postconf", "-X") == [["postconf", "-X", *RELAY_KEYS]]
    assert not root_paths.sasl_passwd.exists()
    assert not db.exists()
    assert not root_paths.header_checks.exists()
    assert runner.ran("postfix", "reload")


def test_remove_relay_dry_run_keeps_files(runner, root_paths):
    configure_relay(root_paths, host="smtp.gmail.com", port=587, user="me@gmail.com", password="pw")
    runner.calls.clear()
    remove_relay(root_paths, dry_run=True)
    assert root_paths.sasl_passwd.exists()
    assert runner.calls == []


def test_send_relay_test_uses_mail(runner):
    send_relay_test("noreply@example.com", "me@example.net")
    (call,) = runner.find("mail")
    assert call[-1] == "me@example.net"
    assert "From: noreply@example.com" in call
    assert "SMTP relay" in runner.inputs[-1]
    with pytest.raises(ConfigError):
        send_relay_test("noreply@example.com", "not-an-address")
