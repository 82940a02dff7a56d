import csv
import json
import logging

import observability


def test_log_event_emits_json(caplog):
    logger = logging.getLogger("test_observability_events")
    with caplog.at_level(logging.INFO, logger="test_observability_events"):
        observability.log_event(logger, "analysis_started", symbol="BTC/USDT", when=object())

    payload = json.loads(caplog.records[-1].message)
    assert payload["event"] == "analysis_started"
    assert payload["symbol"] == "BTC/USDT"
    assert payload["when"].startswith("<object")
    assert "ts" in payload


def test_record_metric_appends_rows(tmp_path, monkeypatch):
    path = tmp_path / "metrics" / "metrics.csv"
    monkeypatch.setenv("METRICS_PATH", str(path))

    observability.record_metric("history_fetch_seconds", 0.25, labels={"symbol": "BTC/USDT"})
    observability.record_metric("live_stream_reconnects", 1)

    with path.open() as handle:
        rows = list(csv.DictReader(handle))
    assert [row["metric"] for row in rows] == ["history_fetch_seconds", "live_stream_reconnects"]
    assert float(rows[0]["value"]) == 0.25
    assert json.loads(rows[0]["labels"]) == {"symbol": "BTC/USDT"}


def test_record_metric_never_raises(tmp_path, monkeypatch):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    monkeypatch.setenv("METRICS_PATH", str(blocker / "metrics.csv"))
    observability.record_metric("analysis_pipeline_seconds", 1.0)


def test_measure_latency_records_labels_even_on_error(tmp_path, monkeypatch):
    path = tmp_path / "metrics.csv"
    monkeypatch.setenv("METRICS_PATH", str(path))

    try:
        with observability.measure_latency("analysis_pipeline_seconds", symbol="BTC/USDT") as labels:
            labels["outcome"] = "error"
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    with path.open() as handle:
        row = next(csv.DictReader(handle))
    assert row["metric"] == "analysis_pipeline_seconds"
    assert json.loads(row["labels"]) == {"outcome": "error", "symbol": "BTC/USDT"}
    assert float(row["value"]) >= 0.0
