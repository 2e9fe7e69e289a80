"""
Database base module - imports all models for Alembic migration detection.

This module imports all SQLAlchemy models to ensure they are registered
with the shared metadata. While the imports appear unused, they are
essential for ``Base.metadata.create_all`` and migration autogeneration.
"""

from app.auth.models.user import User
from app.messaging.models import Conversation, Message
from app.notifications.models.notification import Notification
from app.reports.models.report import Report

__all__ = [
    "User",
    "Report",
    "Conversation",
    "Message",
    "Notification",
]
