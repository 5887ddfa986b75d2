"""
Centralized configuration with environment variable overrides.

Policy thresholds, collaborator endpoints, and server settings are all
configurable here. Nothing is hardcoded in admission or adapter logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _split_csv(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class AdmissionConfig:
    """Booking window, capacity, and duplicate-suppression settings."""

    date_capacity: int = _safe_int("DATE_CAPACITY", "10")
    suppression_seconds: float = _safe_float("DEDUP_SUPPRESSION_SECONDS", "30")
    retention_seconds: float = _safe_float("DEDUP_RETENTION_SECONDS", "300")
    min_lead_days: int = _safe_int("MIN_LEAD_DAYS", "14")
    max_horizon_months: int = _safe_int("MAX_HORIZON_MONTHS", "3")


@dataclass(frozen=True)
class StoreConfig:
    """Booking store (PostgREST / Supabase) connection settings."""

    url: str = os.getenv("SUPABASE_URL", "").rstrip("/")
    service_role_key: str = os.getenv("SUPABASE_SERVICE_ROLE", "")
    table: str = os.getenv("BOOKINGS_TABLE", "Bookings")
    timeout_seconds: float = _safe_float("STORE_TIMEOUT_SECONDS", "10")


@dataclass(frozen=True)
class DispatcherConfig:
    """Workflow webhook endpoints and notification retry settings."""

    booking_webhook_url: str = os.getenv("N8N_BOOKING_WEBHOOK_URL", "")
    cancel_webhook_url: str = os.getenv("N8N_CANCEL_WEBHOOK_URL", "")
    approve_webhook_url: str = os.getenv("N8N_APPROVE_WEBHOOK_URL", "")
    decline_webhook_url: str = os.getenv("N8N_DECLINE_WEBHOOK_URL", "")
    complete_webhook_url: str = os.getenv("N8N_COMPLETE_WEBHOOK_URL", "")
    secret_header: str = os.getenv("N8N_SECRET_HEADER", "x-internal-secret")
    secret_value: str = os.getenv("N8N_SECRET_VALUE", "")
    timeout_seconds: float = _safe_float("DISPATCH_TIMEOUT_SECONDS", "15")
    notify_retry_attempts: int = _safe_int("NOTIFY_RETRY_ATTEMPTS", "3")
    notify_workers: int = _safe_int("NOTIFY_WORKERS", "2")


@dataclass(frozen=True)
class AuthConfig:
    """Identity provider settings for staff-only routes."""

    firebase_api_key: str = os.getenv("FIREBASE_API_KEY", "")
    # Local mode only: "token:subject:email" entries, comma separated.
    staff_tokens: tuple[str, ...] = _split_csv(os.getenv("STAFF_TOKENS", ""))


@dataclass(frozen=True)
class ServerConfig:
    """HTTP server binding and CORS."""

    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = _safe_int("PORT", "8080")
    allowed_origins: tuple[str, ...] = tuple(
        origin.rstrip("/") for origin in _split_csv(os.getenv("ALLOWED_ORIGIN", ""))
    )


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    admission: AdmissionConfig = field(default_factory=AdmissionConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    dispatcher: DispatcherConfig = field(default_factory=DispatcherConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "booking-admission")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.admission.date_capacity < 1:
        raise ValueError(
            f"DATE_CAPACITY must be >= 1, got {config.admission.date_capacity}"
        )
    if config.admission.suppression_seconds <= 0:
        raise ValueError(
            "DEDUP_SUPPRESSION_SECONDS must be > 0, "
            f"got {config.admission.suppression_seconds}"
        )
    if config.admission.retention_seconds < config.admission.suppression_seconds:
        raise ValueError(
            "DEDUP_RETENTION_SECONDS must be >= DEDUP_SUPPRESSION_SECONDS, "
            f"got {config.admission.retention_seconds}"
        )
    if config.admission.min_lead_days < 0:
        raise ValueError(
            f"MIN_LEAD_DAYS must be >= 0, got {config.admission.min_lead_days}"
        )
    if config.admission.max_horizon_months < 1:
        raise ValueError(
            f"MAX_HORIZON_MONTHS must be >= 1, got {config.admission.max_horizon_months}"
        )
    if config.dispatcher.notify_retry_attempts < 1:
        raise ValueError(
            "NOTIFY_RETRY_ATTEMPTS must be >= 1, "
            f"got {config.dispatcher.notify_retry_attempts}"
        )
    if config.dispatcher.notify_workers < 1:
        raise ValueError(
            f"NOTIFY_WORKERS must be >= 1, got {config.dispatcher.notify_workers}"
        )

    for timeout_name, timeout_value in [
        ("STORE_TIMEOUT_SECONDS", config.store.timeout_seconds),
        ("DISPATCH_TIMEOUT_SECONDS", config.dispatcher.timeout_seconds),
    ]:
        if timeout_value <= 0:
            raise ValueError(f"{timeout_name} must be > 0, got {timeout_value}")

    if not 1 <= config.server.port <= 65535:
        raise ValueError(f"PORT must be between 1 and 65535, got {config.server.port}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
