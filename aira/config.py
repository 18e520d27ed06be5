"""Centralized configuration for the AIRA assistant backend.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/aira/<VARIABLE_NAME>``.
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
        import boto3  # noqa: PLC0415  lazy import, only needed on AWS

        ssm = boto3.client("ssm", region_name=AWS_REGION)
        resp = ssm.get_parameter(Name=f"/aira/{name}", WithDecryption=True)
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
        f"Set it in .env (local) or SSM Parameter Store /aira/{name} (AWS)."
    )


# ── AWS / Bedrock ───────────────────────────────────────────────────
AWS_REGION: str = os.getenv("AWS_REGION", "us-east-1")

# US-prefixed ids use cross-region inference profiles
BEDROCK_MODEL_ID: str = os.getenv(
    "BEDROCK_MODEL_ID", "us.anthropic.claude-sonnet-4-20250514-v1:0",
)
BEDROCK_FALLBACK_MODEL: str = os.getenv(
    "BEDROCK_FALLBACK_MODEL", "us.anthropic.claude-3-5-sonnet-20241022-v2:0",
)
BEDROCK_MAX_TOKENS: int = int(os.getenv("BEDROCK_MAX_TOKENS", "4096"))

# Decision calls explore, summary calls restate: keep them distinct.
BEDROCK_TEMPERATURE: float = float(os.getenv("BEDROCK_TEMPERATURE", "0.7"))
BEDROCK_SUMMARY_TEMPERATURE: float = float(
    os.getenv("BEDROCK_SUMMARY_TEMPERATURE", "0.5"),
)

if BEDROCK_SUMMARY_TEMPERATURE >= BEDROCK_TEMPERATURE:
    raise ValueError(
        "BEDROCK_SUMMARY_TEMPERATURE must be lower than BEDROCK_TEMPERATURE "
        f"(got {BEDROCK_SUMMARY_TEMPERATURE} >= {BEDROCK_TEMPERATURE})."
    )

# ── Business data backend ───────────────────────────────────────────
# "api"    → the field-service REST API (production)
# "memory" → in-process store (local dev, CLI demos, tests)
DATA_BACKEND: str = os.getenv("DATA_BACKEND", "api").lower()
FIELD_API_BASE_URL: str = os.getenv("FIELD_API_BASE_URL", "http://localhost:3001")
FIELD_API_TOKEN: str | None = (
    _require_env("FIELD_API_TOKEN") if DATA_BACKEND == "api" else os.getenv("FIELD_API_TOKEN")
)

# ── Chat ────────────────────────────────────────────────────────────
MAX_QUERY_LENGTH: int = int(os.getenv("MAX_QUERY_LENGTH", "10000"))
CONVERSATION_TTL_SECONDS: int = int(os.getenv("CONVERSATION_TTL_SECONDS", "86400"))

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:8081",
).split(",")
