"""Shared enums for the shortlink service.

This module defines all status and classification enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = [
    "HealthStatus",
    "RequestStatus",
    "CacheStatus",
    "IngestionStatus",
    "DeviceType",
    "Browser",
    "OperatingSystem",
    "UNKNOWN",
]

UNKNOWN = "Unknown"


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    ERROR = "error"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    DUPLICATE = "duplicate"


class CacheStatus(StrEnum):
    """Cache status values for metrics."""

    HIT = "true"
    MISS = "false"


class IngestionStatus(StrEnum):
    """Outcome labels for click ingestion jobs."""

    RECORDED = "recorded"
    SKIPPED = "skipped"
    FAILED = "failed"


class DeviceType(StrEnum):
    BOT = "Bot"
    MOBILE = "Mobile"
    TABLET = "Tablet"
    DESKTOP = "Desktop"
    UNKNOWN = "Unknown"


class Browser(StrEnum):
    EDGE = "Edge"
    OPERA = "Opera"
    CHROME = "Chrome"
    SAFARI = "Safari"
    FIREFOX = "Firefox"
    OTHER = "Other"
    UNKNOWN = "Unknown"


class OperatingSystem(StrEnum):
    ANDROID = "Android"
    IOS = "iOS"
    WINDOWS_10 = "Windows 10/11"
    WINDOWS_8_1 = "Windows 8.1"
    WINDOWS_8 = "Windows 8"
    WINDOWS_7 = "Windows 7"
    WINDOWS = "Windows"
    MACOS = "macOS"
    LINUX = "Linux"
    OTHER = "Other"
    UNKNOWN = "Unknown"
