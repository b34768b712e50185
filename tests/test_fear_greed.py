from __future__ import annotations

import json
from http.client import RemoteDisconnected

import pytest
import requests

from fear_greed import FearGreedIndexFetcher

NOW = 1_704_276_000.0


def _fetcher(tmp_path, now=NOW, **kwargs):
    clock = [now]
    fetcher = FearGreedIndexFetcher(cache_path=tmp_path / "cache.json", clock=lambda: clock[0], **kwargs)
    return fetcher, clock


def test_fetch_remote_disconnected_uses_cache(tmp_path, monkeypatch):
    fetcher, _ = _fetcher(tmp_path)
    fetcher._write_cache(42, NOW - 60)

    def raise_remote():
        raise RemoteDisconnected("boom")

    monkeypatch.setattr(fetcher, "_fetch_remote", raise_remote)

    assert fetcher.fetch() == 42


def test_fetch_remote_disconnected_without_cache_returns_none(monkeypatch, tmp_path):
    fetcher, _ = _fetcher(tmp_path)

    def raise_remote():
        raise RemoteDisconnected("boom")

    monkeypatch.setattr(fetcher, "_fetch_remote", raise_remote)

    assert fetcher.fetch() is None


def test_stale_cache_is_ignored(tmp_path, monkeypatch):
    fetcher, _ = _fetcher(tmp_path, stale_after_seconds=3600)
    fetcher._write_cache(80, NOW - 7200)

    def raise_remote():
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(fetcher, "_fetch_remote", raise_remote)
    assert fetcher.fetch() is None


def test_successful_fetch_is_memoised_and_persisted(tmp_path, monkeypatch):
    fetcher, clock = _fetcher(tmp_path, refresh_seconds=600)
    calls = []

    def remote():
        calls.append(1)
        return 25

    monkeypatch.setattr(fetcher, "_fetch_remote", remote)
    assert fetcher.fetch() == 25
    clock[0] += 300
    assert fetcher.fetch() == 25
    assert len(calls) == 1
    clock[0] += 400
    fetcher.fetch()
    assert len(calls) == 2

    cached = json.loads((tmp_path / "cache.json").read_text())
    assert cached["value"] == 25


@pytest.mark.parametrize(
    "payload",
    [{}, {"data": []}, {"data": [{"value": "n/a"}]}, {"data": [{"value": "101"}]}],
)
def test_malformed_payloads_are_rejected(payload):
    with pytest.raises(ValueError):
        FearGreedIndexFetcher._parse_value(payload)


def test_parse_value():
    assert FearGreedIndexFetcher._parse_value({"data": [{"value": "73"}]}) == 73
