"""Transactional email and notification dispatch."""

from quickleads.email.dispatcher import NotificationDispatcher, NotificationKind, notifier
from quickleads.email.service import EmailService, email_service

__all__ = [
    "EmailService",
    "NotificationDispatcher",
    "NotificationKind",
    "email_service",
    "notifier",
]
