"""Tests for teamtime.config, teamtime.logging_config and init_client()."""

import io
import json
import logging

import pytest

import teamtime.integrations.api_gateway as gw_module
from teamtime import init_client
from teamtime.config import ProductionConfig, TestingConfig, get_config
from teamtime.logging_config import JSONFormatter, ReadableFormatter, configure_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield root
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


class TestConfig:
    def test_testing_config_is_memory_only(self):
        cfg = get_config("testing")

        assert isinstance(cfg, TestingConfig)
        assert cfg.SESSION_FILE is None
        assert cfg.IMPORT_POLL_INTERVAL == 0

    def test_unknown_config_rejected(self):
        with pytest.raises(ValueError, match="Unknown config"):
            get_config("staging")

    def test_app_env_selects_config(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "testing")

        assert isinstance(get_config(), TestingConfig)

    def test_production_requires_api_url(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "API_BASE_URL", None)

        with pytest.raises(RuntimeError, match="API_BASE_URL"):
            get_config("production")


class TestFormatters:
    def _record(self, **extra):
        record = logging.LogRecord(
            "teamtime.services.staging_service", logging.INFO, __file__, 10,
            "Staging project transferred id=%s", (5,), None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_formatter_includes_context_fields(self):
        line = JSONFormatter().format(self._record(staging_id=5, duration_ms=12.5))

        entry = json.loads(line)
        assert entry["message"] == "Staging project transferred id=5"
        assert entry["level"] == "INFO"
        assert entry["staging_id"] == 5
        assert entry["duration_ms"] == 12.5
        assert "transfer_id" not in entry

    def test_readable_formatter_appends_context_and_duration(self):
        line = ReadableFormatter(use_color=False).format(
            self._record(staging_id=5, workflow_state="importing", duration_ms=40)
        )

        assert "INFO" in line
        assert "Staging project transferred id=5 (staging=5 state=importing) [40ms]" in line
        assert "\033[" not in line


class TestConfigureLogging:
    def test_production_uses_json(self, restore_root_logger, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "API_BASE_URL", "https://api.teamtime.test/api")
        monkeypatch.setattr(ProductionConfig, "LOG_LEVEL", None)
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        configure_logging(ProductionConfig())

        root = restore_root_logger
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.INFO

    def test_testing_uses_readable_and_quiets_urllib3(self, restore_root_logger):
        configure_logging(TestingConfig())

        assert isinstance(restore_root_logger.handlers[0].formatter, ReadableFormatter)
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_writes_to_given_stream_without_color(self, restore_root_logger):
        stream = io.StringIO()
        configure_logging(TestingConfig(), stream=stream)

        logging.getLogger("teamtime.test").warning("Import %s stalled", 8, extra={"import_id": 8})

        output = stream.getvalue()
        assert "Import 8 stalled (import=8)" in output
        assert "\033[" not in output

    def test_reconfiguring_keeps_one_handler(self, restore_root_logger):
        configure_logging(TestingConfig())
        configure_logging(TestingConfig())

        assert len(restore_root_logger.handlers) == 1


class TestInitClient:
    def test_binds_gateway_to_config_and_session(self, restore_root_logger):
        client = init_client("testing")

        gw = gw_module.api_gateway
        assert gw.base_url == "http://testserver/api"
        assert gw.token_provider == client.session.token_provider
        assert gw.on_unauthorized == client.session.handle_unauthorized
        assert client.session.is_authenticated is False

    def test_workflow_uses_config_polling(self, restore_root_logger):
        client = init_client("testing")

        workflow = client.new_import_workflow()

        assert workflow.poll_interval == 0
        assert workflow.poll_timeout == 5
