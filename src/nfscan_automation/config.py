from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path
from typing import Literal
from typing import Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

DEFAULT_BASE_URL = "https://nfscan.bosch.tech"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only config so a deployment only needs `.env` (or container env vars).

    A YAML file remains an optional override, mostly useful for `portal.field_selectors`.
    """
    return {
        "portal": {
            "base_url": os.getenv("NFSCAN_BASE_URL", DEFAULT_BASE_URL),
            "headless": _env_bool("HEADLESS", default=True),
            "mfa_timeout_ms": _env_int("MFA_TIMEOUT_MS", 60_000),
            "debug_dir": os.getenv("DEBUG_DIR", "data/debug"),
            "step_debug": _env_bool("STEP_DEBUG", default=False),
            "mfa_missing_prompt_policy": os.getenv("MFA_MISSING_PROMPT_POLICY", "assume_approved"),
        },
        "credentials": {
            "identity": os.getenv("BOSCH_ID", ""),
            "secret": os.getenv("BOSCH_PASSWORD", ""),
        },
        "server": {
            "host": os.getenv("HOST", "0.0.0.0"),
            "port": _env_int("PORT", 3000),
            "upload_dir": os.getenv("UPLOAD_DIR", ""),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", "data/nfscan.log"),
        },
    }


class PortalSettings(BaseModel):
    """
    Browser + timing settings for the NFScan portal automation.

    Corporate SSO is slow; the 60s default per-action timeout mirrors what the portal needs in practice.
    """

    base_url: str = DEFAULT_BASE_URL
    document_list_path: str = "/nfscan/document/list"
    headless: bool = True
    slow_mo_ms: int = 0

    viewport_width: int = 1366
    viewport_height: int = 768
    user_agent: str = DEFAULT_USER_AGENT
    locale: str = "pt-BR"

    default_timeout_ms: int = 60_000
    step_timeout_ms: int = 15_000
    mfa_timeout_ms: int = 60_000
    analysis_appear_ms: int = 3_000
    analysis_timeout_ms: int = 30_000
    form_settle_ms: int = 2_000
    save_settle_ms: int = 1_000
    save_timeout_ms: int = 15_000
    poll_interval_ms: int = 250

    # What to do when neither the MFA prompt nor any post-MFA page shows up within `mfa_timeout_ms`.
    # "assume_approved" proceeds to the home-page check; "fail" stops with MfaApprovalTimeoutError.
    mfa_missing_prompt_policy: Literal["assume_approved", "fail"] = "assume_approved"

    debug_dir: str = "data/debug"
    step_debug: bool = False

    # Per-field CSS candidate overrides, e.g. {"valor": ['input[name="amount"]']}.
    field_selectors: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("base_url")
    @classmethod
    def _normalize_base_url(cls, value: str) -> str:
        base_url = (value or "").strip().rstrip("/")
        parsed = urlparse(base_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"portal.base_url must be a full URL like {DEFAULT_BASE_URL!r}")
        return base_url

    @property
    def origin(self) -> str:
        parsed = urlparse(self.base_url)
        return f"{parsed.scheme}://{parsed.netloc}"


class CredentialsConfig(BaseModel):
    identity: str = ""
    secret: str = Field(default="", repr=False)


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000
    upload_dir: str = ""
    max_upload_bytes: int = 10 * 1024 * 1024
    download_timeout_s: float = 60.0

    @model_validator(mode="after")
    def _default_upload_dir(self) -> "ServerConfig":
        if not (self.upload_dir or "").strip():
            self.upload_dir = str(Path(tempfile.gettempdir()) / "nfscan_uploads")
        return self


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = "data/nfscan.log"


class AppConfig(BaseModel):
    portal: PortalSettings = PortalSettings()
    credentials: CredentialsConfig = CredentialsConfig()
    server: ServerConfig = ServerConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
