"""Persistence for users, focus sessions, break suggestions and meetings."""

from .records import (
    BreakSuggestionPatch,
    BreakSuggestionRecord,
    FocusSessionPatch,
    FocusSessionRecord,
    MeetingRecord,
    UserRecord,
)
from .store import SessionStore, SqlAlchemySessionStore, ensure_schema

__all__ = [
    "BreakSuggestionPatch",
    "BreakSuggestionRecord",
    "FocusSessionPatch",
    "FocusSessionRecord",
    "MeetingRecord",
    "SessionStore",
    "SqlAlchemySessionStore",
    "UserRecord",
    "ensure_schema",
]
