"""
Test settings and logging setup
"""
import logging

from config.logging_config import PACKAGE_LOGGERS, setup_logging
from config.settings import AppSettings


def test_recent_studies():
    settings = AppSettings()
    for name in ("a.xml", "b.xml", "a.xml"):
        settings.add_recent_study(name, limit=2)
    assert settings.recent_studies == ["a.xml", "b.xml"]
    settings.add_recent_study("c.xml", limit=2)
    assert settings.recent_studies == ["c.xml", "a.xml"]


def test_setup_logging_is_repeatable(tmp_path):
    log_file = tmp_path / "import.log"
    setup_logging(logging.DEBUG, str(log_file))
    setup_logging(logging.DEBUG, str(log_file))
    assert len(logging.getLogger("core").handlers) == 2
    logging.getLogger("core.test").debug("written")
    for handler in logging.getLogger("core").handlers:
        handler.flush()
    assert "written" in log_file.read_text(encoding="utf-8")

    setup_logging(logging.WARNING)
    assert len(logging.getLogger("core").handlers) == 1

    for name in PACKAGE_LOGGERS:
        package_logger = logging.getLogger(name)
        for handler in list(package_logger.handlers):
            package_logger.removeHandler(handler)
        package_logger.setLevel(logging.NOTSET)


if __name__ == '__main__':
    test_recent_studies()
    print('OK')
