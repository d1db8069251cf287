import logging

from storydrop import cli


def test_main_runs_uvicorn_from_env(monkeypatch):
    seen = {}

    def fake_run(app, **kwargs):
        seen["app"] = app
        seen.update(kwargs)

    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    monkeypatch.setattr(cli, "configure_logging", lambda level: seen.setdefault("configured", level))
    monkeypatch.setenv("STORYDROP_HOST", "0.0.0.0")
    monkeypatch.setenv("STORYDROP_PORT", "9000")
    monkeypatch.setenv("STORYDROP_LOG_LEVEL", "warning")
    monkeypatch.delenv("STORYDROP_RELOAD", raising=False)

    cli.main()

    assert seen["app"] == "storydrop.app:app"
    assert seen["host"] == "0.0.0.0"
    assert seen["port"] == 9000
    assert seen["reload"] is False
    assert seen["log_level"] == "warning"
    assert seen["configured"] == "warning"


def test_configure_logging_adds_request_id():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        cli.configure_logging("debug")
        added = [h for h in root.handlers if h not in before]
        assert len(added) == 1
        record = logging.LogRecord("storydrop", logging.INFO, __file__, 1, "hi", None, None)
        assert added[0].filter(record)
        assert added[0].format(record).endswith("storydrop [-]: hi")
    finally:
        for h in root.handlers[:]:
            if h not in before:
                root.removeHandler(h)
        root.setLevel(level)
