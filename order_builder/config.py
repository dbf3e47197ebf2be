from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]  # .../create-n-order
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_float(*keys: str, default: float) -> float:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v.replace(",", "."))


def _get_path(*keys: str, default: str) -> str:
    v = _get_env(*keys, default=default)
    return str(v)


@dataclass(frozen=True)
class Settings:
    bot_token: str
    admin_id: int
    catalog_api_url: str
    catalog_timeout: float
    export_dir: str
    default_container: str
    invalid_row_ttl: float
    session_idle_ttl: float
    log_level: str


settings = Settings(
    bot_token=_get_env("BOT_TOKEN", "TELEGRAM_BOT_TOKEN", default="") or "",
    admin_id=_get_int("ADMIN_ID", "ADMIN_TG_ID", "ADMIN_TG", default=0) or 0,
    catalog_api_url=(_get_env("CATALOG_API_URL", default="http://localhost:3000/api") or "").rstrip("/"),
    catalog_timeout=_get_float("CATALOG_TIMEOUT", default=10.0),
    export_dir=_get_path("EXPORT_DIR", default=str(ROOT_DIR / "exports")),
    default_container=_get_env("DEFAULT_CONTAINER", default="40") or "40",
    invalid_row_ttl=_get_float("INVALID_ROW_TTL", default=1.4),
    session_idle_ttl=_get_float("SESSION_IDLE_TTL", default=12 * 3600.0),
    log_level=(_get_env("LOG_LEVEL", default="INFO") or "INFO").upper(),
)
