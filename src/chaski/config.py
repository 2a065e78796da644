"""Configuration for the Chaski upload service.

Reads from config/chaski.ini if present, environment variables override.
The GitHub token is never part of configuration: only where to fetch the
scrambled copy of it and the seed needed to unscramble it.
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path

_CONFIG_FILE = Path(__file__).resolve().parent.parent.parent / "config" / "chaski.ini"

DEFAULT_TOKEN_URL = "https://raw.githubusercontent.com/bibekchandsah/bin/main/bin.json"

_INT_FIELDS = {"shuffle_seed", "port", "max_upload_bytes", "conflict_retries", "transient_retries"}
_FLOAT_FIELDS = {"http_timeout", "backoff_base"}


@dataclass(frozen=True)
class ChaskiConfig:
    """Service configuration. Immutable once loaded."""

    repo_owner: str = ""
    repo_name: str = ""
    branch: str = "main"
    api_base: str = "https://api.github.com"
    upload_prefix: str = "music"
    token_url: str = DEFAULT_TOKEN_URL
    token_key: str = "enctest"
    shuffle_seed: int = 42
    host: str = "0.0.0.0"
    port: int = 3000
    staging_dir: str = "uploads"
    static_dir: str = ""
    cors_origins: tuple[str, ...] = ("*",)
    max_upload_bytes: int = 10 * 1024 * 1024
    http_timeout: float = 30.0
    log_level: str = "INFO"
    conflict_retries: int = 0
    transient_retries: int = 0
    backoff_base: float = 0.5

    @property
    def repo_configured(self) -> bool:
        return bool(self.repo_owner and self.repo_name)


def _convert(config_key: str, val: str):
    if config_key in _INT_FIELDS:
        return int(val)
    if config_key in _FLOAT_FIELDS:
        return float(val)
    if config_key == "cors_origins":
        return tuple(o.strip() for o in val.split(",") if o.strip())
    return val


def load_config(config_path: Path | None = None) -> ChaskiConfig:
    """Load config from INI file, then override with environment variables."""
    path = config_path or _CONFIG_FILE
    kwargs: dict = {}

    if path.exists():
        parser = configparser.ConfigParser()
        parser.read(path)
        sections = {
            "github": [
                ("owner", "repo_owner"),
                ("repo", "repo_name"),
                ("branch", "branch"),
                ("api_base", "api_base"),
                ("upload_prefix", "upload_prefix"),
            ],
            "token": [
                ("url", "token_url"),
                ("key", "token_key"),
                ("seed", "shuffle_seed"),
            ],
            "server": [
                ("host", "host"),
                ("port", "port"),
                ("staging_dir", "staging_dir"),
                ("static_dir", "static_dir"),
                ("cors_origins", "cors_origins"),
                ("max_upload_bytes", "max_upload_bytes"),
                ("http_timeout", "http_timeout"),
                ("log_level", "log_level"),
            ],
            "retry": [
                ("conflict", "conflict_retries"),
                ("transient", "transient_retries"),
                ("backoff_base", "backoff_base"),
            ],
        }
        for section, keys in sections.items():
            if not parser.has_section(section):
                continue
            for ini_key, config_key in keys:
                val = parser.get(section, ini_key, fallback=None)
                if val is not None:
                    kwargs[config_key] = _convert(config_key, val)

    env_map = {
        "GITHUB_USER": "repo_owner",
        "GITHUB_REPO": "repo_name",
        "GITHUB_BRANCH": "branch",
        "CHASKI_GITHUB_API": "api_base",
        "CHASKI_UPLOAD_PREFIX": "upload_prefix",
        "CHASKI_TOKEN_URL": "token_url",
        "CHASKI_TOKEN_KEY": "token_key",
        "CHASKI_SHUFFLE_SEED": "shuffle_seed",
        "CHASKI_HOST": "host",
        "PORT": "port",
        "CHASKI_STAGING_DIR": "staging_dir",
        "CHASKI_STATIC_DIR": "static_dir",
        "CHASKI_CORS_ORIGINS": "cors_origins",
        "CHASKI_MAX_UPLOAD_BYTES": "max_upload_bytes",
        "CHASKI_HTTP_TIMEOUT": "http_timeout",
        "CHASKI_LOG_LEVEL": "log_level",
        "CHASKI_CONFLICT_RETRIES": "conflict_retries",
        "CHASKI_TRANSIENT_RETRIES": "transient_retries",
        "CHASKI_BACKOFF_BASE": "backoff_base",
    }
    for env_key, config_key in env_map.items():
        val = os.getenv(env_key)
        if val is not None:
            kwargs[config_key] = _convert(config_key, val)

    # Empty GITHUB_BRANCH falls back to main.
    if not kwargs.get("branch", "main"):
        kwargs.pop("branch")

    kwargs = {k: v for k, v in kwargs.items() if v is not None}
    return ChaskiConfig(**kwargs)
