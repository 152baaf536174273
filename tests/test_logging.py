import logging

import orjson

from utils.logging import JsonFormatter


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("apps.extractor", logging.INFO, __file__, 1, "Synced %d records", (5,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extras() -> None:
    line = JsonFormatter().format(make_record(sync_id="sync-1", failed_pages=[2, 7]))

    payload = orjson.loads(line)
    assert payload["level"] == "INFO"
    assert payload["logger"] == "apps.extractor"
    assert payload["message"] == "Synced 5 records"
    assert payload["sync_id"] == "sync-1"
    assert payload["failed_pages"] == [2, 7]
    assert "args" not in payload


def test_json_formatter_renders_unknown_types_as_strings() -> None:
    payload = orjson.loads(JsonFormatter().format(make_record(path=object())))

    assert payload["path"].startswith("<object object")
