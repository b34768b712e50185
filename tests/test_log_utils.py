import logging
from logging.handlers import RotatingFileHandler

import log_utils


def _reset_logger(logger: logging.Logger, keep) -> None:
    for handler in logger.handlers[:]:
        if handler in keep:
            continue
        logger.removeHandler(handler)
        try:
            handler.close()
        except Exception:
            pass


def test_setup_logger_writes_to_rotating_file(tmp_path, monkeypatch):
    log_file = tmp_path / "logs" / "engine.log"
    monkeypatch.setattr(log_utils, "LOG_FILE", str(log_file))
    root = logging.getLogger()
    before = list(root.handlers)
    previous_level = root.level

    try:
        log_utils.setup_logger("info")
        added = [h for h in root.handlers if h not in before]
        assert len(added) == 2
        assert any(isinstance(h, RotatingFileHandler) for h in added)
        # a second call does not stack handlers
        log_utils.setup_logger("info")
        assert len([h for h in root.handlers if h not in before]) == 2
        assert logging.getLogger("binance").level == logging.WARNING

        engine_logger = logging.getLogger("test_log_utils.engine")
        engine_logger.info("SOLUSDT opened")
        engine_logger.warning("ETHUSDT skipped")
        for handler in added:
            handler.flush()

        tail = log_utils.read_logs(tail=1)
        assert "ETHUSDT skipped" in tail
        assert "SOLUSDT opened" not in tail
        assert "SOLUSDT opened" in log_utils.read_logs(tail=0)
        filtered = log_utils.read_logs(tail=10, symbol="solusdt")
        assert "SOLUSDT opened" in filtered
        assert "ETHUSDT" not in filtered
    finally:
        _reset_logger(root, before)
        root.setLevel(previous_level)


def test_read_logs_without_file(tmp_path, monkeypatch):
    monkeypatch.setattr(log_utils, "LOG_FILE", str(tmp_path / "missing.log"))
    assert log_utils.read_logs() == ""
