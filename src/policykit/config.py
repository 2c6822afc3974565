from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping
import os


def _coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(value, (int, float)):
        return bool(value)
    return default


def _coerce_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _coerce_float(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Settings:
    # Azure AD B2C app registration (client credentials)
    tenant: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    client_assertion: str | None = None
    client_certificate_path: str | None = None
    client_certificate_password: str | None = None

    # Microsoft Graph
    graph_base_url: str = "https://graph.microsoft.com/beta"
    graph_scope: str = "https://graph.microsoft.com/.default"
    request_timeout_s: float = 60.0

    # Behavior
    max_chain_depth: int = 15
    renumber_steps: bool = True
    settings_file_name: str = "appsettings.json"

    # Logging
    log_level: str = "INFO"
    log_dir: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "Settings":
        return cls(
            tenant=env.get("B2C_TENANT", cls.tenant),
            client_id=env.get("B2C_CLIENT_ID", cls.client_id),
            client_secret=env.get("B2C_CLIENT_SECRET", cls.client_secret),
            client_assertion=env.get("B2C_CLIENT_ASSERTION", cls.client_assertion),
            client_certificate_path=env.get("B2C_CLIENT_CERTIFICATE_PATH", cls.client_certificate_path),
            client_certificate_password=env.get("B2C_CLIENT_CERTIFICATE_PASSWORD", cls.client_certificate_password),
            graph_base_url=env.get("POLICYKIT_GRAPH_BASE_URL", cls.graph_base_url),
            graph_scope=env.get("POLICYKIT_GRAPH_SCOPE", cls.graph_scope),
            request_timeout_s=_coerce_float(env.get("POLICYKIT_REQUEST_TIMEOUT_S"), cls.request_timeout_s),
            max_chain_depth=max(1, _coerce_int(env.get("POLICYKIT_MAX_CHAIN_DEPTH"), cls.max_chain_depth)),
            renumber_steps=_coerce_bool(env.get("POLICYKIT_RENUMBER_STEPS"), cls.renumber_steps),
            settings_file_name=env.get("POLICYKIT_SETTINGS_FILE", cls.settings_file_name),
            log_level=env.get("POLICYKIT_LOG_LEVEL", cls.log_level).upper(),
            log_dir=env.get("LOG_DIR", cls.log_dir),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env(os.environ)
