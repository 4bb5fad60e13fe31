import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

DEFAULT_UPLOADS_PATH = "/tmp/llf-uploads"


class ConfigError(RuntimeError):
    pass


def _get_required_env(name: str) -> str:
    value = os.environ.get(name, "").strip()
    if not value:
        raise ConfigError(f"Missing required environment variable: {name}")
    return value


def database_url() -> str:
    url = _get_required_env("DATABASE_URL")
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg://" + url[len("postgresql://") :]
    return url


def default_platform_config() -> Dict[str, Any]:
    base_path = os.environ.get("LLF_UPLOADS_LOCAL_PATH", "").strip() or DEFAULT_UPLOADS_PATH
    return {
        "storage": {
            "primary": {"name": "local"},
            "providers": [{"name": "local", "type": "local", "local": {"base_path": base_path}}],
        }
    }


def load_platform_config() -> Dict[str, Any]:
    path = os.environ.get("LLF_PLATFORM_CONFIG", "").strip()
    if not path:
        return default_platform_config()
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Unable to read platform config {path}: {exc}") from exc


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret: str
    jwt_issuer: str = "llf-api"
    jwt_audience: str = "llf"
    session_ttl_seconds: int = 3600
    reset_ttl_seconds: int = 1800
    platform_config: Dict[str, Any] = field(default_factory=default_platform_config)


def load_settings() -> Settings:
    return Settings(
        database_url=database_url(),
        jwt_secret=_get_required_env("LLF_JWT_SECRET"),
        jwt_issuer=os.environ.get("LLF_JWT_ISSUER", "llf-api"),
        jwt_audience=os.environ.get("LLF_JWT_AUDIENCE", "llf"),
        session_ttl_seconds=int(os.environ.get("LLF_SESSION_TTL_SECONDS", "3600")),
        reset_ttl_seconds=int(os.environ.get("LLF_RESET_TTL_SECONDS", "1800")),
        platform_config=load_platform_config(),
    )
