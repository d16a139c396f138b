import json
import logging

from anonchat.obs import logging as obs_logging


def _record(msg: str, level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord("anonchat.test", level, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_json_with_bound_context():
    with obs_logging.log_context(request_id="req-1", participant_id="p-1", sid=None):
        line = obs_logging.JSONLogFormatter().format(_record("paired", kind="human"))
        assert obs_logging.current_request_id() == "req-1"

    payload = json.loads(line)
    assert payload["msg"] == "paired"
    assert payload["level"] == "info"
    assert payload["request_id"] == "req-1"
    assert payload["participant_id"] == "p-1"
    assert "sid" not in payload
    assert payload["kind"] == "human"
    assert obs_logging.current_request_id() is None


def test_nested_context_restores_outer_fields():
    with obs_logging.log_context(sid="sid-1"):
        with obs_logging.log_context(event="message"):
            assert obs_logging.current_context() == {"sid": "sid-1", "event": "message"}
        assert obs_logging.current_context() == {"sid": "sid-1"}


def test_formatter_redacts_message_content():
    payload = json.loads(obs_logging.JSONLogFormatter().format(_record("relay", content="secret words")))
    assert payload["content"] == "[redacted]"


def test_sampling_filter_keeps_warnings(monkeypatch):
    monkeypatch.setattr(obs_logging.settings, "obs_log_sampling_rate_info", 0.0)
    sampler = obs_logging.InfoSamplingFilter()

    assert sampler.filter(_record("dropped")) is False
    assert sampler.filter(_record("kept", logging.WARNING)) is True
