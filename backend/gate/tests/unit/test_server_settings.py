import pytest
from pydantic import ValidationError

from gate.server.settings import GateServerSettings
from gate.server.websocket import is_operator_token


class TestGateServerSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("GATE_OPERATOR_TOKEN", raising=False)
        monkeypatch.delenv("GATE_LOG_DIR", raising=False)

        settings = GateServerSettings()

        assert settings.config_path == "backend/config/keyauth.yaml"
        assert settings.log_dir == "backend/logs/gate"
        assert settings.operator_token is None
        assert settings.rotation_check_interval_seconds == 60
        assert settings.republish_interval_seconds == 300
        assert settings.welcome_delay_seconds == 3

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("GATE_CONFIG_PATH", "/etc/gate/keyauth.yaml")
        monkeypatch.setenv("GATE_ROTATION_CHECK_INTERVAL_SECONDS", "5")

        settings = GateServerSettings()

        assert settings.config_path == "/etc/gate/keyauth.yaml"
        assert settings.rotation_check_interval_seconds == 5

    def test_test_env_file_is_loaded(self):
        assert GateServerSettings().operator_token == "test-operator-token"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"rotation_check_interval_seconds": 0},
            {"republish_interval_seconds": -1},
            {"welcome_delay_seconds": -0.5},
            {"operator_token": ""},
        ],
    )
    def test_rejects_invalid_values(self, overrides):
        with pytest.raises(ValidationError):
            GateServerSettings(**overrides)


class TestOperatorToken:
    def test_matching_token(self):
        assert is_operator_token("s3cret", "s3cret")

    def test_mismatch(self):
        assert not is_operator_token("guess", "s3cret")

    @pytest.mark.parametrize(("candidate", "configured"), [(None, "s3cret"), ("", "s3cret"), ("s3cret", None)])
    def test_missing_values_never_match(self, candidate, configured):
        assert not is_operator_token(candidate, configured)
