"""Environment-driven settings for the task hub MCP server."""

from dataclasses import dataclass
from functools import lru_cache
import os

from .errors import InvalidArgument

TRANSPORTS = ("sse", "stdio")


@dataclass(frozen=True)
class Settings:
    server_name: str = "durable-task-scheduler"
    transport: str = "sse"
    host: str = "0.0.0.0"
    port: int = 3000
    authentication: str = "DefaultAzure"
    query_page_size: int = 100
    bulk_max_concurrency: int | None = None
    executor_workers: int = 8
    operation_timeout: float | None = 120.0
    arm_endpoint: str = "https://management.azure.com"
    arm_api_version: str = "2024-10-01-preview"
    arm_timeout: float = 30.0
    log_level: str = "INFO"


def _int(name: str, default: int | None, minimum: int = 1) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise InvalidArgument(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise InvalidArgument(f"{name} must be >= {minimum}, got {value}")
    return value


def _float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise InvalidArgument(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise InvalidArgument(f"{name} must not be negative, got {value}")
    # 0 disables the timeout
    return value or None


def load_settings() -> Settings:
    transport = os.getenv("DTS_MCP_TRANSPORT", "sse").strip().lower()
    if transport not in TRANSPORTS:
        raise InvalidArgument(f"DTS_MCP_TRANSPORT must be one of {TRANSPORTS}, got {transport!r}")

    return Settings(
        server_name=os.getenv("DTS_MCP_NAME", "durable-task-scheduler"),
        transport=transport,
        host=os.getenv("DTS_MCP_HOST", "0.0.0.0"),
        port=_int("DTS_MCP_PORT", 3000),
        authentication=os.getenv("DTS_AUTHENTICATION", "DefaultAzure").strip(),
        query_page_size=_int("DTS_QUERY_PAGE_SIZE", 100),
        bulk_max_concurrency=_int("DTS_BULK_MAX_CONCURRENCY", None),
        executor_workers=_int("DTS_EXECUTOR_WORKERS", 8),
        operation_timeout=_float("DTS_OPERATION_TIMEOUT", 120.0),
        arm_endpoint=os.getenv("AZURE_ARM_ENDPOINT", "https://management.azure.com").rstrip("/"),
        arm_api_version=os.getenv("DTS_ARM_API_VERSION", "2024-10-01-preview"),
        arm_timeout=_float("DTS_ARM_TIMEOUT", 30.0) or 30.0,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
