"""Centralized configuration for the Linked Profiles service.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/linked-profiles/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 — lazy import to avoid boto3 dep in tests

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/linked-profiles/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /linked-profiles/{name} (AWS)."
    )


def parse_page_ranges(raw: str) -> list[tuple[int, int]]:
    """Parse ``"150-200,100-150"`` into ``[(150, 200), (100, 150)]``.

    Ranges are half-open: ``150-200`` covers pages 150..199.
    """
    ranges: list[tuple[int, int]] = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        start, _, end = chunk.partition("-")
        first, stop = int(start), int(end)
        if first < 1 or stop <= first:
            raise ValueError(f"Invalid page range: {chunk!r}")
        ranges.append((first, stop))
    return ranges


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


# ── Meevo ───────────────────────────────────────────────────────────
MEEVO_CLIENT_ID: str = _require_env("MEEVO_CLIENT_ID")
MEEVO_CLIENT_SECRET: str = _require_env("MEEVO_CLIENT_SECRET")
MEEVO_AUTH_URL: str = os.getenv("MEEVO_AUTH_URL", "https://marketplace.meevo.com/oauth2/token")
MEEVO_API_URL: str = os.getenv("MEEVO_API_URL", "https://na1pub.meevo.com/publicapi/v1")
MEEVO_TENANT_ID: str = os.getenv("MEEVO_TENANT_ID", "200507")
MEEVO_LOCATION_ID: str = os.getenv("MEEVO_LOCATION_ID", "201664")
MEEVO_CHANGE_FEED_PATH: str = os.getenv("MEEVO_CHANGE_FEED_PATH", "/cdc/entity/Client/changes")

# Per-call timeouts (seconds)
PAGE_TIMEOUT_SECONDS: float = float(os.getenv("PAGE_TIMEOUT_SECONDS", "3"))
DETAIL_TIMEOUT_SECONDS: float = float(os.getenv("DETAIL_TIMEOUT_SECONDS", "3"))
CANDIDATE_TIMEOUT_SECONDS: float = float(os.getenv("CANDIDATE_TIMEOUT_SECONDS", "2"))
CHANGE_FEED_TIMEOUT_SECONDS: float = float(os.getenv("CHANGE_FEED_TIMEOUT_SECONDS", "10"))
AUTH_TIMEOUT_SECONDS: float = float(os.getenv("AUTH_TIMEOUT_SECONDS", "10"))

# ── Discovery ───────────────────────────────────────────────────────
DISCOVERY_STRATEGY: str = os.getenv("DISCOVERY_STRATEGY", "hybrid")
# Empty means "the strategy's own default filter"
DISCOVERY_CANDIDATE_FILTER: str | None = os.getenv("DISCOVERY_CANDIDATE_FILTER") or None
DISCOVERY_PAGE_RANGES: list[tuple[int, int]] = parse_page_ranges(
    os.getenv("DISCOVERY_PAGE_RANGES", "150-200,100-150,50-100,1-50")
)
DISCOVERY_MAX_PAGES: int = int(os.getenv("DISCOVERY_MAX_PAGES", "200"))
DISCOVERY_FALLBACK_MAX_PAGES: int = int(os.getenv("DISCOVERY_FALLBACK_MAX_PAGES", "50"))
DISCOVERY_DETAIL_BATCH_SIZE: int = int(os.getenv("DISCOVERY_DETAIL_BATCH_SIZE", "50"))
CHANGE_FEED_LOOKBACK_DAYS: int | None = _optional_int("CHANGE_FEED_LOOKBACK_DAYS")
CHANGE_FEED_MAX_PAGES: int = int(os.getenv("CHANGE_FEED_MAX_PAGES", "50"))

# ── Service identity ────────────────────────────────────────────────
ENVIRONMENT: str = os.getenv("ENVIRONMENT", "PRODUCTION")
LOCATION_NAME: str = os.getenv("LOCATION_NAME", "Phoenix Encanto")
SERVICE_NAME: str = "get-linked-profiles"

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", os.getenv("PORT", "3000")))
