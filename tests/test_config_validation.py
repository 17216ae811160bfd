"""
Tests for configuration loading and the shared input validators.

Covers:
- YAML loading, defaults and environment overrides
- Rejection of invalid configuration values
- PAN, Aadhaar, pincode, phone and e-mail formats
- Path id parsing and log sanitizing
"""

import pytest

from config_manager import ConfigManager, ConfigurationError
from validation_utils import (
    InputValidationError,
    validate_pan,
    validate_aadhaar,
    validate_pincode,
    validate_phone,
    validate_email,
    validate_contact_details,
    parse_id,
    parse_id_list,
    sanitize_for_logging,
)


# ============================================
# FIXTURES
# ============================================

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("CONFIG_PATH", "DB_PATH", "DATABASE_URL", "DB_ECHO", "API_HOST", "API_PORT",
                 "MAX_UPLOAD_SIZE_MB", "UPLOAD_DIR", "CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    ConfigManager.reset_instance()
    yield
    ConfigManager.reset_instance()


@pytest.fixture
def write_config(tmp_path):
    def _write(text):
        path = tmp_path / "config.yaml"
        path.write_text(text, encoding="utf-8")
        return str(path)
    return _write


# ============================================
# CONFIGURATION TESTS
# ============================================

class TestConfigManager:
    """Tests for ConfigManager loading and validation."""

    def test_loads_file_values(self, write_config):
        path = write_config(
            "database:\n  path: /srv/backoffice.db\n"
            "api:\n  port: 8080\n  max_upload_size_mb: 5\n"
            "logging:\n  level: debug\n"
        )
        config = ConfigManager(path)

        assert config.database.path == "/srv/backoffice.db"
        assert config.api.port == 8080
        assert config.api.max_upload_size_mb == 5
        assert config.logging.level == "DEBUG"
        # sections left out keep their defaults
        assert config.monitoring.slow_query_threshold_ms == 1000.0

    def test_missing_file_uses_defaults(self, tmp_path):
        config = ConfigManager(str(tmp_path / "absent.yaml"))
        assert config.api.port == 3001
        assert config.api.upload_directory == "uploads/documents"
        assert "http://localhost:5173" in config.api.cors_origins

    def test_environment_wins(self, write_config, monkeypatch):
        path = write_config("api:\n  port: 8080\n")
        monkeypatch.setenv("API_PORT", "9090")
        monkeypatch.setenv("CORS_ORIGINS", "https://admin.example.in, https://ops.example.in")
        monkeypatch.setenv("DB_PATH", "/tmp/override.db")

        config = ConfigManager(path)

        assert config.api.port == 9090
        assert config.api.cors_origins == ["https://admin.example.in", "https://ops.example.in"]
        assert config.database.path == "/tmp/override.db"

    @pytest.mark.parametrize("text", [
        "api:\n  port: 70000\n",
        "api:\n  port: web\n",
        "api:\n  max_upload_size_mb: 0\n",
        "logging:\n  level: LOUD\n",
        "monitoring:\n  slow_query_threshold_ms: 100\n  warning_threshold_ms: 500\n",
        "- just\n- a list\n",
    ])
    def test_invalid_values_rejected(self, write_config, text):
        with pytest.raises(ConfigurationError):
            ConfigManager(write_config(text))

    def test_invalid_yaml(self, write_config):
        with pytest.raises(ConfigurationError):
            ConfigManager(write_config("api: [unclosed\n"))

    def test_singleton_and_export(self, write_config):
        path = write_config("api:\n  port: 4000\n")
        first = ConfigManager.get_instance(path)
        assert ConfigManager.get_instance() is first
        exported = first.to_dict()
        assert exported["api"]["port"] == 4000
        assert set(exported) == {"database", "api", "logging", "monitoring"}


# ============================================
# INPUT VALIDATION TESTS
# ============================================

class TestIdentityValidators:
    """Tests for PAN, Aadhaar and pincode formats."""

    def test_pan_is_uppercased(self):
        assert validate_pan(" abcde1234f ") == "ABCDE1234F"

    def test_bad_pan(self):
        with pytest.raises(InputValidationError) as exc_info:
            validate_pan("ABCD1234F")
        assert exc_info.value.code == "INVALID_PAN"
        assert exc_info.value.field == "panNumber"

    @pytest.mark.parametrize("value,expected", [
        ("123456789012", "123456789012"),
        ("1234 5678 9012", "123456789012"),
        ("XXXX-XXXX-9012", "XXXX-XXXX-9012"),
    ])
    def test_aadhaar_accepted(self, value, expected):
        assert validate_aadhaar(value) == expected

    def test_bad_aadhaar(self):
        with pytest.raises(InputValidationError):
            validate_aadhaar("12345")

    def test_pincode(self):
        assert validate_pincode("110001") == "110001"
        with pytest.raises(InputValidationError):
            validate_pincode("012345")


class TestContactValidators:
    """Tests for phone and e-mail formats."""

    @pytest.mark.parametrize("value", ["9876543210", "+91 98765 43210", "98765-43210"])
    def test_phone_normalized(self, value):
        assert validate_phone(value) == "9876543210"

    @pytest.mark.parametrize("value", ["12345", "5876543210", "98765432101"])
    def test_bad_phone(self, value):
        with pytest.raises(InputValidationError):
            validate_phone(value)

    def test_email(self):
        assert validate_email(" asha@example.com ") == "asha@example.com"
        with pytest.raises(InputValidationError):
            validate_email("asha@example")

    def test_contact_details_follow_type(self):
        assert validate_contact_details("phone", "9876543210") == "9876543210"
        with pytest.raises(InputValidationError):
            validate_contact_details("email", "9876543210")
        with pytest.raises(InputValidationError) as exc_info:
            validate_contact_details("fax", "123")
        assert exc_info.value.code == "INVALID_CONTACT_TYPE"


class TestIdParsing:

    def test_parse_id(self):
        assert parse_id("42") == 42

    @pytest.mark.parametrize("raw", ["abc", "0", "-3", "", None, "1.5"])
    def test_parse_id_rejects(self, raw):
        with pytest.raises(InputValidationError) as exc_info:
            parse_id(raw, "client ID")
        assert exc_info.value.message == "Invalid client ID"
        assert exc_info.value.to_dict()["code"] == "INVALID_ID"

    def test_parse_id_list(self):
        assert parse_id_list("1, 2,,3") == [1, 2, 3]
        assert parse_id_list(None) == []
        with pytest.raises(InputValidationError):
            parse_id_list("1,x")


class TestLogSanitizing:

    def test_control_characters_removed(self):
        assert sanitize_for_logging("line1\nFAKE ENTRY\r\x00end") == "line1 FAKE ENTRY end"

    def test_truncated(self):
        assert len(sanitize_for_logging("a" * 900)) == 500

    def test_empty(self):
        assert sanitize_for_logging("") == ""
