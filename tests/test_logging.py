import json
import logging

from core.logging import JsonFormatter, get_logger


def test_get_logger_idempotent() -> None:
    logger1 = get_logger("test.logger")
    handlers_before = list(logger1.handlers)
    logger2 = get_logger("test.logger")
    assert logger1 is logger2
    assert len(logger1.handlers) == len(handlers_before)
    assert logger1.propagate is False


def test_json_formatter_keeps_whitelisted_extra_only() -> None:
    record = logging.LogRecord("radar.test", logging.INFO, __file__, 1, "fixtures_fetched %s", ("ok",), None)
    record.fixtures = 12
    record.league_id = 71
    record.secret = "nope"
    payload = json.loads(JsonFormatter().format(record))
    assert payload["msg"] == "fixtures_fetched ok"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "radar.test"
    assert payload["fixtures"] == 12
    assert payload["league_id"] == 71
    assert "secret" not in payload
    assert payload["ts"].endswith("Z")
