"""
Tests for settings, structured logging and connection correlation.
"""

import json
import logging

from collab_relay.components.core.context import sanitize_log_data
from collab_relay.config.logging import StructuredFormatter, get_logger, mask_token
from collab_relay.config.settings import Settings
from collab_relay.infrastructure.correlation import (
    ConnectionIdFilter,
    bind_connection_id,
    get_connection_id,
    reset_connection_id,
)


class TestSettings:
    """Settings validation."""

    def test_development_defaults_pass(self):
        assert Settings(environment="development").validate_production_settings() == []

    def test_production_rejects_debug_and_short_timeout(self):
        problems = Settings(
            environment="production",
            debug=True,
            liveness_interval=60,
            ws_receive_timeout=30,
        ).validate_production_settings()
        assert len(problems) == 2

    def test_short_session_ids_rejected(self):
        assert Settings(session_id_length=3).validate_production_settings()

    def test_history_enabled_follows_url(self):
        assert not Settings(history_database_url="").history_enabled
        assert Settings(history_database_url="sqlite://").history_enabled

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("RELAY_PORT", "4100")
        monkeypatch.setenv("LIVENESS_INTERVAL", "5")
        settings = Settings()
        assert settings.relay_port == 4100
        assert settings.liveness_interval == 5.0


class TestLogging:
    """Structured logger and formatter."""

    def test_mask_token(self):
        assert mask_token(None) == "<no-token>"
        assert mask_token("abc") == "a***"
        assert mask_token("machine-12345") == "machin..."

    def test_kwargs_become_extra_data(self, caplog):
        logger = get_logger("collab_relay.tests")
        with caplog.at_level(logging.INFO, logger="collab_relay.tests"):
            logger.info("Member joined", session_id="ABC123", name="ana")

        record = caplog.records[-1]
        assert record.getMessage() == "Member joined"
        assert record.extra_data == {"session_id": "ABC123", "name": "ana"}

    def test_structured_formatter_includes_connection_id(self):
        record = logging.LogRecord("collab_relay", logging.INFO, __file__, 1, "hello", (), None)
        record.extra_data = {"session_id": "ABC123"}
        token = bind_connection_id("conn-1")
        try:
            ConnectionIdFilter().filter(record)
        finally:
            reset_connection_id(token)

        data = json.loads(StructuredFormatter().format(record))
        assert data["message"] == "hello"
        assert data["connection_id"] == "conn-1"
        assert data["data"] == {"session_id": "ABC123"}

    def test_connection_id_reset(self):
        token = bind_connection_id("conn-2")
        assert get_connection_id() == "conn-2"
        reset_connection_id(token)
        assert get_connection_id() == ""


class TestSanitizeLogData:
    """Client text embedded in log lines."""

    def test_strips_newlines_and_bidi_overrides(self):
        assert sanitize_log_data("ana\nFAKE LINE\u202e") == "anaFAKE LINE"

    def test_escapes_quotes_and_backslashes(self):
        assert sanitize_log_data('say "hi" \\o/') == 'say \\"hi\\" \\\\o/'

    def test_truncates_before_escaping(self):
        assert sanitize_log_data('abc"def', max_length=4) == 'abc\\"...'
