import logging
from pathlib import Path

import pytest

from juggler.logging import configure_logging


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


def test_configure_logging_writes_file(tmp_path: Path, restore_root_logging) -> None:
    log_path = tmp_path / "state" / "juggler.log"

    configure_logging("debug", log_path=log_path)
    logging.getLogger("juggler.test").debug("Job %s is waiting", 7)
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("aiohttp.access").level == logging.WARNING
    content = log_path.read_text(encoding="utf-8")
    assert "| DEBUG | juggler.test | Job 7 is waiting" in content
