"""
Centralized configuration with environment variable overrides.

All practice-specific values, policy thresholds, and notification
settings are configurable here. Nothing is hardcoded in service logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from booking_engine.logging_context import LOG_FORMAT, install_request_id_filter

load_dotenv()

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


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


def _safe_bool(env_var: str, default: str) -> bool:
    """Parse a boolean flag (true/false, yes/no, 1/0, on/off)."""
    raw = os.getenv(env_var, default)
    normalized = raw.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


@dataclass(frozen=True)
class PracticeConfig:
    """Practice-facing settings used in notification copy and links."""

    name: str = os.getenv("PRACTICE_NAME", "Ground & Grow Psychology")
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:5173")


@dataclass(frozen=True)
class BookingPolicyConfig:
    """Cancellation and reminder policy."""

    cancellation_notice_hours: int = _safe_int("CANCELLATION_NOTICE_HOURS", "24")
    reminder_lead_hours: int = _safe_int("REMINDER_LEAD_HOURS", "24")


@dataclass(frozen=True)
class NotificationConfig:
    """Delivery channels and retry behaviour of the notification sweep."""

    email_enabled: bool = _safe_bool("EMAIL_NOTIFICATIONS_ENABLED", "true")
    sms_enabled: bool = _safe_bool("SMS_NOTIFICATIONS_ENABLED", "false")
    max_retries: int = _safe_int("NOTIFICATION_MAX_RETRIES", "3")
    retry_backoff_minutes: int = _safe_int("NOTIFICATION_RETRY_BACKOFF_MINUTES", "5")
    sweep_interval_seconds: float = _safe_float("NOTIFICATION_SWEEP_INTERVAL_SECONDS", "60")


@dataclass(frozen=True)
class PaymentConfig:
    """Payment gateway contract settings."""

    currency: str = os.getenv("PAYMENT_CURRENCY", "AUD")
    webhook_secret: str = os.getenv("PAYMENT_WEBHOOK_SECRET", "whsec_local_development")
    webhook_tolerance_seconds: int = _safe_int("PAYMENT_WEBHOOK_TOLERANCE_SECONDS", "300")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    practice: PracticeConfig = field(default_factory=PracticeConfig)
    policy: BookingPolicyConfig = field(default_factory=BookingPolicyConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    payments: PaymentConfig = field(default_factory=PaymentConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "booking-engine")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.policy.cancellation_notice_hours < 0:
        raise ValueError(
            "CANCELLATION_NOTICE_HOURS must be >= 0, "
            f"got {config.policy.cancellation_notice_hours}"
        )
    if config.policy.reminder_lead_hours < 0:
        raise ValueError(
            f"REMINDER_LEAD_HOURS must be >= 0, got {config.policy.reminder_lead_hours}"
        )
    if config.notifications.max_retries < 1:
        raise ValueError(
            f"NOTIFICATION_MAX_RETRIES must be >= 1, got {config.notifications.max_retries}"
        )
    if config.notifications.retry_backoff_minutes < 1:
        raise ValueError(
            "NOTIFICATION_RETRY_BACKOFF_MINUTES must be >= 1, "
            f"got {config.notifications.retry_backoff_minutes}"
        )
    if config.notifications.sweep_interval_seconds <= 0:
        raise ValueError(
            "NOTIFICATION_SWEEP_INTERVAL_SECONDS must be > 0, "
            f"got {config.notifications.sweep_interval_seconds}"
        )
    if len(config.payments.currency) != 3:
        raise ValueError(
            f"PAYMENT_CURRENCY must be a 3-letter code, got {config.payments.currency!r}"
        )
    if not config.payments.webhook_secret:
        raise ValueError("PAYMENT_WEBHOOK_SECRET must not be empty")
    if config.payments.webhook_tolerance_seconds < 1:
        raise ValueError(
            "PAYMENT_WEBHOOK_TOLERANCE_SECONDS must be >= 1, "
            f"got {config.payments.webhook_tolerance_seconds}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        install_request_id_filter(handler)
    logger.info("Configuration loaded for '%s'", config.practice.name)
    return config


# Singleton instance
settings = load_config()
