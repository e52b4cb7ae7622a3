"""
core/config.py

Typed settings loader for the pipeline demo API.
Pydantic v2 + pydantic-settings.
Ensures .env.local (or .env) is loaded automatically for local development.
"""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Load environment early (.env.local preferred). We try both backend folder
# and repo root so it works no matter where you run uvicorn from.
# ---------------------------------------------------------------------------
BACKEND_DIR = Path(__file__).resolve().parents[2]          # .../apps/backend
ROOT_DIR = BACKEND_DIR.parents[1]                           # repo root

_env_candidates = [
    BACKEND_DIR / ".env.local",
    ROOT_DIR / ".env.local",
    BACKEND_DIR / ".env",
    ROOT_DIR / ".env",
]

_loaded = False
for _p in _env_candidates:
    if _p.exists():
        load_dotenv(_p, override=True)
        print(f"[config] Loaded environment from: {_p}")
        _loaded = True
        break

if not _loaded:
    print("[config] No .env.local or .env file found, using system environment only.")


PRODUCTION_STAGES = {"prod", "production"}

_rate_pattern = re.compile(r"^\s*(\d+)\s*/\s*([smhd])\s*$", re.IGNORECASE)
_unit_seconds = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_rate(s: str) -> Tuple[int, int]:
    """
    Parses a simple rate string like "15/m" -> (15, 60)
    """
    m = _rate_pattern.match(s or "")
    if not m:
        # default to a conservative 60/m if misconfigured
        return 60, 60
    count = int(m.group(1))
    window = _unit_seconds[m.group(2).lower()]
    return count, window


def _split_csv(raw: str) -> List[str]:
    items: List[str] = []
    for item in (raw or "").split(","):
        item = item.strip()
        if item and item not in items:
            items.append(item)
    return items


# ---------------------------------------------------------------------------
# Settings Model
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    # ----- Service -----
    APP_NAME: str = "pipeline-demo-api"
    APP_STAGE: str = "dev"  # dev|staging|prod
    API_BASE_PATH: str = "/api"
    LOG_LEVEL: str = "INFO"
    PORT: int = 3001

    # ----- CORS -----
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:2999"

    # ----- Rate limits -----
    RATE_LIMIT: str = "15/m"
    RATE_LIMIT_MESSAGE: str = "Too many requests from this IP, please try again after 15 minutes."
    RATE_LIMIT_BACKEND: str = "memory"  # memory|redis
    TRUST_FORWARDED_FOR: bool = False

    # ----- Cache -----
    REDIS_URL: Optional[str] = None  # optional; no URL means the cache always misses
    CACHE_TTL_SEC: int = 100
    CACHE_KEY_PREFIX: str = "cache:"
    CACHE_ROUTES: str = "/demo"  # prefixes relative to API_BASE_PATH

    # ----- Compression -----
    COMPRESSION_LEVEL: int = 6
    COMPRESSION_THRESHOLD: int = 1024
    NO_COMPRESSION_HEADER: str = "x-no-compression"

    # ----- Security headers / cookies -----
    TRUSTED_SOURCES: str = ""
    HSTS_MAX_AGE: int = 31536000
    HSTS_INCLUDE_SUBDOMAINS: bool = True
    HSTS_PRELOAD: bool = True
    FRAME_POLICY: str = "deny"
    REFERRER_POLICY: str = "no-referrer"
    SESSION_COOKIE_NAME: str = "session_id"
    SESSION_COOKIE_VALUE: str = "some-session-value"

    # ----- Upstream / demo -----
    THIRD_PARTY_URL: str = "https://example.com"
    UPSTREAM_TIMEOUT_SEC: float = 10.0
    DEMO_DELAY_SEC: float = 1.0

    # ----- Pydantic Settings Config -----
    model_config = SettingsConfigDict(
        env_file=None,  # already loaded manually above
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ----- Validators -----
    @field_validator("API_BASE_PATH", mode="before")
    @classmethod
    def normalize_base_path(cls, v: str) -> str:
        v = (v or "").strip().rstrip("/")
        if v and not v.startswith("/"):
            v = "/" + v
        return v

    @field_validator("COMPRESSION_LEVEL")
    @classmethod
    def check_compression_level(cls, v: int) -> int:
        if not 0 <= v <= 9:
            raise ValueError("COMPRESSION_LEVEL must be between 0 and 9")
        return v

    @field_validator("RATE_LIMIT_BACKEND")
    @classmethod
    def check_rate_limit_backend(cls, v: str) -> str:
        v = (v or "memory").strip().lower()
        if v not in ("memory", "redis"):
            raise ValueError("RATE_LIMIT_BACKEND must be 'memory' or 'redis'")
        return v

    # ----- Derived values -----
    @property
    def allowed_origin_list(self) -> List[str]:
        return [o.rstrip("/") for o in _split_csv(self.ALLOWED_ORIGINS)]

    @property
    def trusted_source_list(self) -> List[str]:
        return _split_csv(self.TRUSTED_SOURCES)

    @property
    def cache_route_list(self) -> List[str]:
        return [f"{self.API_BASE_PATH}/{p.strip('/')}" for p in _split_csv(self.CACHE_ROUTES)]

    @property
    def rate_limit(self) -> Tuple[int, int]:
        return parse_rate(self.RATE_LIMIT)

    @property
    def is_production(self) -> bool:
        return self.APP_STAGE.strip().lower() in PRODUCTION_STAGES

    @property
    def third_party_path(self) -> str:
        return f"{self.API_BASE_PATH}/test/third-party-content"


# ---------------------------------------------------------------------------
# Cached accessor
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached accessor so the app constructs Settings only once per process."""
    return Settings()
