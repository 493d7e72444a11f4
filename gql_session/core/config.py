"""Settings for the query builder service.

Values come from keyword arguments or from the environment via
:meth:`BuilderSettings.from_env`.
"""

import json
import logging
import os
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

MAX_HEADER_NAME_LENGTH = 100
MAX_HEADER_VALUE_LENGTH = 1000


class SchemaStrictness(str, Enum):
    """What to do when the schema cannot be fetched."""
    STRICT = "strict"      # fail the operation
    ADVISORY = "advisory"  # log and continue with schema-independent checks


def validate_headers(headers: Any) -> str | None:
    """Check a header mapping; returns an error message or None."""
    if not isinstance(headers, dict):
        return "Headers must be a JSON object"
    for name, value in headers.items():
        if not isinstance(name, str) or not isinstance(value, str):
            return f"Header '{name}' must have a string name and value"
        if len(name) > MAX_HEADER_NAME_LENGTH:
            return f"Header name '{name[:20]}...' exceeds {MAX_HEADER_NAME_LENGTH} characters"
        if len(value) > MAX_HEADER_VALUE_LENGTH:
            return f"Value of header '{name}' exceeds {MAX_HEADER_VALUE_LENGTH} characters"
    return None


class BuilderSettings(BaseModel):
    """Runtime configuration."""

    endpoint: str | None = Field(default=None, description="Default GraphQL endpoint URL")
    default_headers: dict[str, str] = Field(
        default_factory=dict, description="Headers sent with every upstream request"
    )
    session_ttl_seconds: int = Field(
        default=3600, ge=0, description="Idle session lifetime; 0 disables expiry"
    )
    redis_url: str | None = Field(default=None, description="Session store; memory when unset")
    schema_strictness: SchemaStrictness = Field(default=SchemaStrictness.STRICT)
    schema_timeout: float = Field(default=30.0, gt=0, description="Introspection timeout in seconds")
    execution_timeout: float = Field(default=30.0, gt=0, description="Query timeout in seconds")
    expensive_execution_timeout: float = Field(
        default=60.0, gt=0, description="Timeout for queries scoring above the threshold"
    )
    expensive_score_threshold: float = Field(default=1500.0, ge=0)
    store_retry_attempts: int = Field(default=5, ge=1)
    store_retry_delay: float = Field(default=1.0, ge=0, description="Backoff step in seconds")
    max_introspection_bytes: int = Field(default=800 * 1024, gt=0)
    log_level: str = Field(default="INFO")

    @field_validator("default_headers")
    @classmethod
    def _check_headers(cls, value: dict[str, str]) -> dict[str, str]:
        error = validate_headers(value)
        if error:
            raise ValueError(error)
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "BuilderSettings":
        """Build settings from environment variables, skipping malformed values."""
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}

        if env.get("DEFAULT_GRAPHQL_ENDPOINT"):
            data["endpoint"] = env["DEFAULT_GRAPHQL_ENDPOINT"]
        if env.get("REDIS_URL"):
            data["redis_url"] = env["REDIS_URL"]
        if env.get("SCHEMA_STRICTNESS"):
            data["schema_strictness"] = env["SCHEMA_STRICTNESS"].lower()
        if env.get("LOG_LEVEL"):
            data["log_level"] = env["LOG_LEVEL"]

        raw_headers = env.get("DEFAULT_GRAPHQL_HEADERS")
        if raw_headers:
            try:
                headers = json.loads(raw_headers)
            except json.JSONDecodeError as e:
                logger.warning("Ignoring DEFAULT_GRAPHQL_HEADERS: invalid JSON (%s)", e)
            else:
                error = validate_headers(headers)
                if error:
                    logger.warning("Ignoring DEFAULT_GRAPHQL_HEADERS: %s", error)
                else:
                    data["default_headers"] = headers

        numeric = {
            "SESSION_TTL_SECONDS": ("session_ttl_seconds", int),
            "SCHEMA_TIMEOUT_SECONDS": ("schema_timeout", float),
            "QUERY_TIMEOUT_SECONDS": ("execution_timeout", float),
            "EXPENSIVE_QUERY_TIMEOUT_SECONDS": ("expensive_execution_timeout", float),
            "REDIS_OPERATION_RETRIES": ("store_retry_attempts", int),
        }
        for env_var, (name, convert) in numeric.items():
            if env.get(env_var):
                try:
                    data[name] = convert(env[env_var])
                except ValueError:
                    logger.warning("Ignoring %s: not a number (%r)", env_var, env[env_var])

        if env.get("REDIS_OPERATION_RETRY_MS"):
            try:
                data["store_retry_delay"] = int(env["REDIS_OPERATION_RETRY_MS"]) / 1000
            except ValueError:
                logger.warning("Ignoring REDIS_OPERATION_RETRY_MS: not a number")

        return cls(**data)
