import logging

from sawyers_rpg import logging_config


def test_env_var_overrides_level(monkeypatch):
    seen = {}
    monkeypatch.setenv("SRPG_LOG_LEVEL", "debug")
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: seen.update(kw))

    logging_config.configure_logging()

    assert seen["level"] == logging.DEBUG
    assert "%(name)s" in seen["format"]


def test_unknown_level_falls_back(monkeypatch):
    seen = {}
    monkeypatch.setenv("SRPG_LOG_LEVEL", "chatty")
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: seen.update(kw))

    logging_config.configure_logging(logging.WARNING)

    assert seen["level"] == logging.WARNING


def test_custom_env_var(monkeypatch):
    seen = {}
    monkeypatch.delenv("SRPG_LOG_LEVEL", raising=False)
    monkeypatch.setenv("SRPG_SAVES_LOG", "error")
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: seen.update(kw))

    level = logging_config.configure_logging(env_var="SRPG_SAVES_LOG")

    assert level == logging.ERROR
    assert seen["level"] == logging.ERROR


def test_resolve_level():
    assert logging_config.resolve_level(" Warning ", logging.INFO) == logging.WARNING
    assert logging_config.resolve_level(None, logging.INFO) == logging.INFO
    assert logging_config.resolve_level("Level 99", logging.INFO) == logging.INFO
