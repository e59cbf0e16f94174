from enum import Enum
from functools import lru_cache
from typing import Dict

from pydantic import Field
from pydantic_settings import BaseSettings

# Mimics a desktop Chrome so upstreams with naive bot detection answer normally.
BROWSER_HEADERS: Dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Cache-Control": "max-age=0",
}

DEFAULT_TIMEOUT_MS = 300_000


class TrustPolicy(str, Enum):
    RELAXED = "relaxed"
    STRICT = "strict"


class Settings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"

    default_timeout_ms: int = Field(DEFAULT_TIMEOUT_MS, gt=0)
    default_headers: Dict[str, str] = Field(default_factory=lambda: dict(BROWSER_HEADERS))

    # Outbound transport tuning
    tls_trust: TrustPolicy = TrustPolicy.RELAXED
    max_redirects: int = 5
    max_connections: int = 10
    max_keepalive_connections: int = 5
    keepalive_expiry: float = 5.0

    class Config:
        env_prefix = "PROXY_"
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
