import logging

from mailhost_installer.logging_utils import configure_logging


def test_reconfigure_moves_the_log_file(tmp_path):
    first = tmp_path / "a" / "first.log"
    second = tmp_path / "b" / "second.log"

    assert configure_logging(str(first), also_console=False) == str(first)
    logging.getLogger("mailhost.test").info("to first")
    assert configure_logging(str(second), also_console=False) == str(second)
    logging.getLogger("mailhost.test").info("to second")

    assert "to first" in first.read_text()
    assert "to second" not in first.read_text()
    assert "to second" in second.read_text()


def test_unwritable_path_falls_back_to_cwd(tmp_path, monkeypatch):
    blocker = tmp_path / "file"
    blocker.write_text("")
    monkeypatch.chdir(tmp_path)

    chosen = configure_logging(str(blocker / "sub" / "x.log"), also_console=False)
    assert chosen == str(tmp_path / "mailhost-installer.log")
    assert "logging to" in (tmp_path / "mailhost-installer.log").read_text()


def test_http_and_dns_chatter_is_quieted(tmp_path):
    configure_logging(str(tmp_path / "x.log"), also_console=False)
    assert logging.getLogger("urllib3").level == logging.WARNING
    assert logging.getLogger("dns").level == logging.WARNING
