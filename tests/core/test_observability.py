import json
import logging

from modflow.config import LoggingConfig
from modflow.observability import JsonFormatter, configure_logging


def test_json_formatter_carries_extras():
    record = logging.makeLogRecord(
        {"name": "modflow.test", "levelname": "INFO", "msg": "booted %s", "args": ("Blog",)}
    )
    record.module_name = "Blog"
    data = json.loads(JsonFormatter().format(record))
    assert data["msg"] == "booted Blog"
    assert data["level"] == "info"
    assert data["module_name"] == "Blog"


def test_configure_logging_is_idempotent():
    cfg = LoggingConfig(level="warn", format="json", logger="modflow-test-observability")
    log = configure_logging(cfg)
    configure_logging(cfg)
    tagged = [h for h in log.handlers if getattr(h, "_modflow", False)]
    assert len(tagged) == 1
    assert isinstance(tagged[0].formatter, JsonFormatter)
    assert log.level == logging.WARNING
    log.removeHandler(tagged[0])
