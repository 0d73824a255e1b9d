import logging

import pytest

from drone_bridge.logging import QUIET_LOGGERS, configure_logging


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def test_configure_logging_writes_to_file(root_logger, tmp_path) -> None:
    path = tmp_path / "logs" / "bridge.log"
    configure_logging("debug", log_path=str(path))

    assert root_logger.level == logging.DEBUG
    logging.getLogger("drone_bridge.test").debug("navdata receiver up")
    for handler in root_logger.handlers:
        handler.flush()

    assert "DEBUG | drone_bridge.test | navdata receiver up" in path.read_text(encoding="utf-8")


def test_configure_logging_quiets_client_libraries(root_logger) -> None:
    configure_logging("nonsense")

    assert root_logger.level == logging.INFO
    assert len(root_logger.handlers) == 1
    for name in QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
