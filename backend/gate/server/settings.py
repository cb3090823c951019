"""Gate server configuration via environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings


class GateServerSettings(BaseSettings):
    model_config = {"env_prefix": "GATE_"}

    config_path: str = Field(default="backend/config/keyauth.yaml", min_length=1)
    log_dir: str = Field(default="backend/logs/gate", min_length=1)

    # Clients connecting with ?operator=<token> are privileged (no key
    # required, all keyauth.* permissions). Unset disables operator logins.
    operator_token: str | None = Field(default=None, min_length=1)

    rotation_check_interval_seconds: float = Field(default=60, gt=0)
    republish_interval_seconds: float = Field(default=300, gt=0)
    welcome_delay_seconds: float = Field(default=3, ge=0)
