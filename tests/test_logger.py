import json
import logging

from utils.logger import JsonFormatter, get_logger


def _record(msg, **extra):
    record = logging.LogRecord(
        name="api.statute_client",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_extra_fields_are_merged(self):
        record = _record("statute search failed", extra_fields={"source": "statute", "latency_ms": 12})

        data = json.loads(JsonFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["logger"] == "api.statute_client"
        assert data["message"] == "statute search failed"
        assert data["source"] == "statute"
        assert data["latency_ms"] == 12
        assert data["timestamp"].endswith("Z")

    def test_korean_text_is_not_escaped(self):
        line = JsonFormatter().format(_record("검색 실패", extra_fields={"title": "개인정보 보호법"}))

        assert "개인정보 보호법" in line
        assert "\\u" not in line

    def test_without_extra_fields(self):
        data = json.loads(JsonFormatter().format(_record("plain")))

        assert data["message"] == "plain"


def test_get_logger_configures_root_once():
    first = get_logger("cache.response_cache")
    handlers = list(logging.getLogger().handlers)
    second = get_logger("cache.response_cache")

    assert first is second
    assert logging.getLogger().handlers == handlers
    assert any(isinstance(h.formatter, JsonFormatter) for h in handlers)
    assert logging.getLogger("httpx").level == logging.WARNING
