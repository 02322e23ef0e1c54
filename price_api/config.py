import os
from dataclasses import dataclass, field
from typing import List

TESTNET_BASE_URL = "https://testnet.binancefuture.com"
DEFAULT_BASE_URL = "https://fapi.binance.com"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    bind: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    binance_base_url: str = DEFAULT_BASE_URL
    binance_testnet: bool = False
    binance_api_key: str = ""
    request_timeout_ms: int = 5000
    max_batch_symbols: int = 20
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    api_prefix: str = ""

    @property
    def upstream_base_url(self) -> str:
        if self.binance_testnet:
            return TESTNET_BASE_URL
        return self.binance_base_url

    @property
    def request_timeout_s(self) -> float:
        return self.request_timeout_ms / 1000.0


def load_settings() -> Settings:
    """Build :class:`Settings` from the process environment.

    Malformed values raise ``ValueError`` so a misconfigured deployment fails
    at startup instead of on the first request.
    """
    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    prefix = os.getenv("API_PREFIX", "").strip().rstrip("/")
    if prefix and not prefix.startswith("/"):
        prefix = "/" + prefix
    return Settings(
        bind=os.getenv("BIND", "0.0.0.0"),
        port=_env_int("PORT", 8080, minimum=1),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        binance_base_url=os.getenv("BINANCE_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
        binance_testnet=_env_bool("BINANCE_TESTNET", False),
        binance_api_key=os.getenv("BINANCE_API_KEY", ""),
        request_timeout_ms=_env_int("REQUEST_TIMEOUT_MS", 5000, minimum=1),
        max_batch_symbols=_env_int("MAX_BATCH_SYMBOLS", 20, minimum=1),
        cors_origins=origins or ["*"],
        api_prefix=prefix,
    )
