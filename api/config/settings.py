# api/config/settings.py
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="OG_",
        case_sensitive=False,
    )

    # Env / identity
    env: str = "dev"
    service: str = "outagegate-core"
    log_level: str = "INFO"

    # Auth: unset auth_enabled means "enabled iff an api_key is configured"
    auth_enabled: Optional[bool] = None
    api_key: Optional[str] = None

    # Decision log (caller-side audit trail; the engine never touches it)
    db_url: str = ""
    decision_log_enabled: bool = True

    @property
    def resolved_auth_enabled(self) -> bool:
        if self.auth_enabled is not None:
            return bool(self.auth_enabled)
        return bool(self.api_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
