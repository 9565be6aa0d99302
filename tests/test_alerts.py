"""
Tests for the alert sink.
"""

from sol_momentum.monitoring.alerts import AlertSink


def test_write_appends_record(alerts):
    assert alerts.write("HEARTBEAT", "alive", {"capital": 100}) is True
    records = alerts.recent()
    assert len(records) == 1
    assert records[0]["type"] == "HEARTBEAT"
    assert records[0]["message"] == "alive"
    assert records[0]["data"] == {"capital": 100}
    assert "timestamp" in records[0]


def test_write_defaults_data_to_empty_dict(alerts):
    alerts.write("ERROR", "boom")
    assert alerts.recent()[0]["data"] == {}


def test_recent_is_bounded_and_ordered(alerts):
    for i in range(5):
        alerts.write("SIGNAL", f"s{i}")
    records = alerts.recent(limit=2)
    assert [r["message"] for r in records] == ["s3", "s4"]


def test_write_failure_is_swallowed(state_store, monkeypatch):
    sink = AlertSink(state_store, "alerts.log")

    def fail(*args, **kwargs):
        raise OSError("read-only fs")

    monkeypatch.setattr(state_store, "append_jsonl", fail)
    assert sink.write("ERROR", "cannot persist") is False
    assert sink.dropped == 1


def test_alert_raised_while_writing_is_dropped(state_store, monkeypatch):
    sink = AlertSink(state_store, "alerts.log")
    real_append = state_store.append_jsonl
    inner_results = []

    def append_and_reenter(name, record):
        inner_results.append(sink.write("ERROR", "nested"))
        real_append(name, record)

    monkeypatch.setattr(state_store, "append_jsonl", append_and_reenter)
    assert sink.write("HEARTBEAT", "outer") is True
    assert inner_results == [False]
    assert sink.dropped == 1

    records = sink.recent()
    assert [r["message"] for r in records] == ["outer"]
