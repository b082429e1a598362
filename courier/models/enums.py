"""Closed value sets stored as plain strings."""

import enum


class NotificationChannel(str, enum.Enum):
    TELEGRAM = "TELEGRAM"


class NotificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class NotificationCategory(str, enum.Enum):
    CRITICAL = "CRITICAL"
    TRANSACTIONAL = "TRANSACTIONAL"
    MARKETING = "MARKETING"


class UserRole(str, enum.Enum):
    TRAVELER = "TRAVELER"
    AGENT = "AGENT"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
