import json
import logging

import pytest

from speaker_store.logging_config import ColoredConsoleFormatter, setup_logging


@pytest.fixture
def reset_store_logger():
    yield
    setup_logging(level="WARNING")


def test_log_file_receives_json_lines(tmp_path, reset_store_logger):
    log_path = tmp_path / "store.log"
    setup_logging(level="INFO", log_file=str(log_path))

    logging.getLogger("speaker_store.mongo_store").info(
        "Created speaker: a0:b1:c2:d3:e4:f5", extra={"ip": "192.168.1.20"}
    )
    for handler in logging.getLogger("speaker_store").handlers:
        handler.flush()

    entry = json.loads(log_path.read_text(encoding="utf-8").strip().splitlines()[-1])
    assert entry["level"] == "INFO"
    assert entry["logger"] == "speaker_store.mongo_store"
    assert entry["message"] == "Created speaker: a0:b1:c2:d3:e4:f5"
    assert entry["extra"] == {"ip": "192.168.1.20"}


def test_pymongo_is_quiet_outside_debug(reset_store_logger):
    setup_logging(level="INFO")
    assert logging.getLogger("pymongo").level == logging.WARNING

    setup_logging(level="DEBUG")
    assert logging.getLogger("pymongo").level == logging.DEBUG


def test_setup_replaces_previous_handlers(reset_store_logger):
    setup_logging(level="INFO")
    store_logger = setup_logging(level="INFO")

    assert len(store_logger.handlers) == 1
    assert store_logger.propagate is False


def test_console_formatter_restores_levelname():
    record = logging.makeLogRecord({"levelname": "ERROR", "levelno": logging.ERROR, "msg": "boom"})
    output = ColoredConsoleFormatter("%(levelname)s %(message)s").format(record)

    assert "\033[31mERROR\033[0m boom" == output
    assert record.levelname == "ERROR"
