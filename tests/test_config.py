import pytest

from mailhost_installer.config import MailConfig, load_config_file, merge_config, split_email
from mailhost_installer.errors import ConfigError


def test_hostname_and_emails_default_from_domain():
    cfg = MailConfig(raw={"mail_domain": "Example.COM"})
    assert cfg.mail_domain == "example.com"
    assert cfg.hostname == "mail.example.com"
    assert cfg.letsencrypt_email == "admin@example.com"
    assert cfg.dkim_selector == "mail"
    cfg.validate()


def test_letsencrypt_email_falls_back_to_admin():
    cfg = MailConfig(raw={"mail_domain": "example.com", "admin_email": "ops@example.net"})
    assert cfg.letsencrypt_email == "ops@example.net"


@pytest.mark.parametrize(
    "raw",
    [
        {},
        {"mail_domain": "not a domain"},
        {"mail_domain": "example.com", "hostname": "-bad-.example.com"},
        {"mail_domain": "example.com", "admin_email": "nobody"},
        {"mail_domain": "example.com", "dmarc_policy": "maybe"},
    ],
)
def test_validate_rejects(raw):
    with pytest.raises(ConfigError):
        MailConfig(raw=raw).validate()


def test_split_email():
    assert split_email("Alice@Example.com") == ("Alice", "example.com")
    for bad in ("", "alice", "a@b@c.com", "alice@localhost", "al ice@example.com"):
        with pytest.raises(ConfigError):
            split_email(bad)


def test_merge_config_none_never_overrides():
    merged = merge_config({"enable_ufw": True, "dkim_selector": "mail"}, {"dkim_selector": "s1"}, {"enable_ufw": None, "dkim_selector": "s2"})
    assert merged == {"enable_ufw": True, "dkim_selector": "s2"}


def test_load_config_file(tmp_path):
    p = tmp_path / "mail.yaml"
    p.write_text("mail_domain: example.com\nuse_self_signed: true\nrelay:\n  host: smtp.example.net\n")
    raw = load_config_file(str(p))
    cfg = MailConfig(raw=raw)
    assert cfg.use_self_signed is True
    assert cfg.relay == {"host": "smtp.example.net"}
    with pytest.raises(ConfigError, match="user and password required"):
        cfg.validate()

    p.write_text(p.read_text() + "  user: apikey\n  password: SG.x\n")
    cfg = MailConfig(raw=load_config_file(str(p)))
    cfg.validate()
    assert cfg.relay["user"] == "apikey"


def test_load_config_file_errors(tmp_path):
    with pytest.raises(ConfigError):
        load_config_file(str(tmp_path / "missing.yaml"))

    j = tmp_path / "mail.json"
    j.write_text("{}")
    with pytest.raises(ConfigError):
        load_config_file(str(j))

    lst = tmp_path / "list.yaml"
    lst.write_text("- a\n- b\n")
    with pytest.raises(ConfigError):
        load_config_file(str(lst))
