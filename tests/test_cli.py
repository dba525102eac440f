import pytest

from mailhost_installer import diagnose, relay_cli, users
from mailhost_installer.lib.dns_check import CheckResult
from mailhost_installer.lib.smtp_probe import ProbeResult, SendResult

from conftest import write


@pytest.fixture
def cli(runner, root_paths, tmp_path):
    log = str(tmp_path / "cli.log")

    def _users(*argv):
        return users.main(["--root", root_paths.root, "--log", log, *argv])

    return _users


def test_users_add_list_del(cli, root_paths, capsys):
    assert cli("add", "alice@example.com", "--password", "pw1") == 0
    assert cli("add", "bob@example.com", "--password", "pw2") == 0
    assert "Added bob@example.com" in capsys.readouterr().out

    assert cli("list") == 0
    assert capsys.readouterr().out.split() == ["alice@example.com", "bob@example.com"]

    assert cli("del", "alice@example.com", "--keep-mail") == 0
    assert "(mail kept)" in capsys.readouterr().out
    assert (root_paths.vmail_home / "example.com" / "alice").is_dir()

    assert cli("del", "alice@example.com") == 1
    assert (root_paths.vmail_home / "example.com" / "alice" / "Maildir").is_dir()


def test_users_add_prompts_for_password(cli, root_paths, monkeypatch):
    answers = iter(["pw", "pw"])
    monkeypatch.setattr(users.getpass, "getpass", lambda prompt="": next(answers))
    assert cli("add", "carol@example.com") == 0
    assert root_paths.dovecot_users.read_text().startswith("carol@example.com:")


def test_users_prompt_mismatch_fails(cli, monkeypatch, capsys):
    answers = iter(["pw", "other"])
    monkeypatch.setattr(users.getpass, "getpass", lambda prompt="": next(answers))
    assert cli("add", "carol@example.com") == 1
    assert "do not match" in capsys.readouterr().err


def test_users_generate_and_passwd(cli, capsys):
    assert cli("add", "dave@example.com", "--generate") == 0
    out = capsys.readouterr().out
    assert "Password: " in out
    assert cli("passwd", "dave@example.com", "--password", "new") == 0
    assert cli("passwd", "nobody@example.com", "--password", "new") == 1


def test_users_rejects_bad_address(cli, capsys):
    assert cli("add", "not-an-address", "--password", "pw") == 1
    assert "Invalid email address" in capsys.readouterr().err


def test_users_alias(cli, root_paths, runner, capsys):
    write(root_paths.aliases, "postmaster: root\n")
    assert cli("alias", "abuse", "ops@example.com") == 0
    assert runner.ran("newaliases")
    capsys.readouterr()
    assert cli("alias") == 0
    assert capsys.readouterr().out.splitlines() == ["postmaster: root", "abuse: ops@example.com"]


def test_users_requires_root_on_live_system(runner, tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(users, "is_root", lambda: False)
    assert users.main(["--log", str(tmp_path / "l.log"), "add", "a@example.com", "--password", "x"]) == 1
    assert "root" in capsys.readouterr().err


class StubChecker:
    def __init__(self, results):
        self.results = results
        self.kwargs = None

    def validate_domain(self, **kwargs):
        self.kwargs = kwargs
        return self.results


def test_check_dns(monkeypatch, tmp_path, capsys):
    stub = StubChecker(
        [
            CheckResult("A", True, "mail.example.com -> 203.0.113.10"),
            CheckResult("PTR", False, "PTR record not found", level="warning"),
        ]
    )
    monkeypatch.setattr(diagnose, "DnsChecker", lambda: stub)
    rc = diagnose.main(["--log", str(tmp_path / "l.log"), "dns", "--domain", "example.com", "--ip", "203.0.113.10"])
    assert rc == 0
    assert stub.kwargs["hostname"] == "mail.example.com"
    out = capsys.readouterr().out
    assert "[WARN] PTR" in out

    stub.results.append(CheckResult("MX", False, "MX record not found"))
    assert diagnose.main(["--log", str(tmp_path / "l.log"), "dns", "--domain", "example.com", "--ip", "203.0.113.10"]) == 1


def test_check_smtp(monkeypatch, tmp_path, capsys):
    for k in ("SMTP_HOST", "SMTP_PORT", "SMTP_SECURE", "SMTP_USER", "SMTP_PASS"):
        monkeypatch.delenv(k, raising=False)
    seen = {}
    monkeypatch.setattr(diagnose, "check_port", lambda host, port, **kw: port != 465)

    def fake_probe(settings):
        seen["settings"] = settings
        return ProbeResult(
            host=settings.host,
            port=settings.port,
            connected=True,
            banner="mail.example.com ESMTP",
            starttls=True,
            tls_active=True,
            auth_mechanisms=["PLAIN", "LOGIN"],
            login_ok=True,
        )

    monkeypatch.setattr(diagnose, "probe", fake_probe)
    env = tmp_path / "empty.env"
    env.write_text("")
    rc = diagnose.main(
        [
            "--log",
            str(tmp_path / "l.log"),
            "smtp",
            "--env-file",
            str(env),
            "--host",
            "mail.example.com",
            "--port",
            "587",
            "--user",
            "noreply@example.com",
            "--password",
            "pw",
        ]
    )
    assert rc == 0
    assert seen["settings"].user == "noreply@example.com"
    out = capsys.readouterr().out
    assert "[WARN] port mail.example.com:465" in out
    assert "AUTH:      PLAIN LOGIN" in out


def test_check_send(monkeypatch, tmp_path, capsys):
    sent = {}

    def fake_send(settings, sender, recipient, subject=None):
        sent.update(sender=sender, recipient=recipient)
        return SendResult(message_id="<1@example.com>", accepted=[recipient], refused={})

    monkeypatch.setattr(diagnose, "send_test_email", fake_send)
    env = tmp_path / "empty.env"
    env.write_text("")
    rc = diagnose.main(
        [
            "--log",
            str(tmp_path / "l.log"),
            "send",
            "--env-file",
            str(env),
            "--host",
            "mail.example.com",
            "--from",
            "noreply@example.com",
            "--to",
            "me@example.net",
        ]
    )
    assert rc == 0
    assert sent == {"sender": "noreply@example.com", "recipient": "me@example.net"}
    assert "<1@example.com>" in capsys.readouterr().out


def test_check_status(runner, root_paths, tmp_path, capsys):
    runner.on("systemctl", "is-active", "--quiet", "opendkim", returncode=3)
    runner.on("systemctl", "is-enabled", "--quiet", "dovecot", returncode=1)
    runner.on("postconf", "-h", "myhostname", stdout="mail.example.com\n")
    write(root_paths.cert_file, "CERT")
    write(root_paths.key_file, "KEY")
    write(root_paths.mailname, "example.com\n")

    rc = diagnose.main(["--log", str(tmp_path / "l.log"), "status", "--root", root_paths.root])
    out = capsys.readouterr().out
    assert rc == 1
    assert "[FAIL] opendkim inactive" in out
    assert "[OK]   postfix active" in out
    assert "dovecot active (not enabled at boot)" in out
    assert "myhostname = mail.example.com" in out

    runner.on("systemctl", "is-active", "--quiet", "opendkim", returncode=0)
    assert diagnose.main(["--log", str(tmp_path / "l.log"), "status", "--root", root_paths.root]) == 0


def test_check_status_reads_main_cf_first(runner, root_paths, tmp_path, capsys):
    write(root_paths.main_cf, "myhostname = mail.example.com\nrelayhost =\n    [smtp.gmail.com]:587\n")
    runner.on("postconf", "-h", "mydomain", stdout="example.com\n")
    diagnose.main(["--log", str(tmp_path / "l.log"), "status", "--root", root_paths.root])
    out = capsys.readouterr().out
    assert "relayhost = [smtp.gmail.com]:587" in out
    assert "mydomain = example.com" in out
    assert not runner.ran("postconf", "-h", "relayhost")
    assert not runner.ran("postconf", "-h", "myhostname")


def test_relay_cli(runner, root_paths, tmp_path, capsys):
    rc = relay_cli.main(
        [
            "--provider",
            "gmail",
            "--user",
            "me@gmail.com",
            "--password",
            "app-pw",
            "--root",
            root_paths.root,
            "--log",
            str(tmp_path / "l.log"),
        ]
    )
    assert rc == 0
    assert root_paths.sasl_passwd.read_text() == "[smtp.gmail.com]:587 me@gmail.com:app-pw\n"
    out = capsys.readouterr().out
    assert "App Password" in out
    assert "[smtp.gmail.com]:587" in out
    assert runner.ran("apt-get", "install", "-y", "--no-install-recommends", "postfix", "libsasl2-modules")


def test_relay_cli_custom_needs_host(runner, root_paths, tmp_path):
    rc = relay_cli.main(["--user", "u", "--password", "p", "--root", root_paths.root, "--log", str(tmp_path / "l.log")])
    assert rc == 1
    assert runner.calls == []


def _relay(root_paths, tmp_path, *argv):
    return relay_cli.main([*argv, "--root", root_paths.root, "--log", str(tmp_path / "l.log")])


def test_relay_cli_show(runner, root_paths, tmp_path, capsys):
    runner.on("postconf", "-h", "relayhost", stdout="[smtp.gmail.com]:587\n")
    assert _relay(root_paths, tmp_path, "--show") == 1
    captured = capsys.readouterr()
    assert "relayhost = [smtp.gmail.com]:587" in captured.out
    assert "credentials: missing" in captured.out

    write(root_paths.sasl_passwd, "[smtp.gmail.com]:587 me:pw\n")
    assert _relay(root_paths, tmp_path, "--show") == 0
    assert "credentials: configured" in capsys.readouterr().out


def test_relay_cli_remove(runner, root_paths, tmp_path, capsys):
    write(root_paths.sasl_passwd, "[smtp.gmail.com]:587 me:pw\n")
    assert _relay(root_paths, tmp_path, "--remove") == 0
    assert not root_paths.sasl_passwd.exists()
    assert runner.ran("postconf", "-X", "relayhost")
    assert "relay removed" in capsys.readouterr().out


def test_relay_cli_test_defaults_sender_to_mydomain(runner, root_paths, tmp_path):
    runner.on("postconf", "-h", "mydomain", stdout="example.com\n")
    assert _relay(root_paths, tmp_path, "--test", "me@example.net") == 0
    (call,) = runner.find("mail")
    assert "From: noreply@example.com" in call


def test_relay_cli_configure_needs_user(root_paths, tmp_path):
    with pytest.raises(SystemExit):
        _relay(root_paths, tmp_path, "--provider", "gmail", "--password", "pw")


def test_users_stats(cli, root_paths, runner, capsys):
    cli("add", "alice@example.com", "--password", "pw")
    cli("add", "bob@example.org", "--password", "pw")
    runner.on("mailq", stdout="Mail queue is empty\n")
    write(root_paths.mail_log, "".join(f"line {i}\n" for i in range(30)))
    capsys.readouterr()

    assert cli("stats", "--lines", "5") == 0
    out = capsys.readouterr().out
    assert "Mail users: 2 (2 domain(s))" in out
    assert "Mail queue is empty" in out
    assert "line 29" in out
    assert "line 24" not in out
