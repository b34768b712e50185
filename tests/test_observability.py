import csv
import json
import logging

import observability


class _Unserialisable:
    def __repr__(self):
        return "<thing>"


def test_log_event_emits_json(caplog):
    logger = logging.getLogger("test_observability")
    with caplog.at_level(logging.INFO, logger="test_observability"):
        observability.log_event(logger, "position_opened", symbol="SOLUSDT", margin=15.0)
    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "position_opened"
    assert payload["symbol"] == "SOLUSDT"
    assert payload["ts"].endswith("Z")


def test_log_event_falls_back_to_repr(caplog):
    logger = logging.getLogger("test_observability")
    with caplog.at_level(logging.INFO, logger="test_observability"):
        observability.log_event(logger, "odd", value=_Unserialisable())
    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["value"] == "<thing>"


def test_record_metric_appends_csv(tmp_path, monkeypatch):
    recorder = observability.MetricsRecorder(str(tmp_path / "metrics.csv"))
    monkeypatch.setattr(observability, "_recorder", recorder)
    observability.record_metric("balance", 9985.0)
    observability.record_metric("drawdown_percent", 3.1, labels={"symbol": "SOLUSDT"})
    observability.record_metric("balance", 9997.0)
    with open(recorder.path, newline="") as fh:
        rows = list(csv.DictReader(fh))
    assert [r["metric"] for r in rows] == ["balance", "drawdown_percent", "balance"]
    assert json.loads(rows[1]["labels"]) == {"symbol": "SOLUSDT"}
    assert observability.latest_metrics() == {"balance": 9997.0, "drawdown_percent": 3.1}


def test_latest_metrics_without_file(tmp_path, monkeypatch):
    monkeypatch.setattr(observability, "_recorder", observability.MetricsRecorder(str(tmp_path / "none.csv")))
    assert observability.latest_metrics() == {}
