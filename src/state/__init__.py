"""
State models and helpers for local JSON persistence.

This package defines the snapshot schema (`AppState`) and the single-file
store that saves it, optionally encrypted with Fernet, and moves it in and
out of plain JSON backups.
"""

from .models import AppState, Reading
from .local_store import InvalidBackupFormat, LocalStateStore

__all__ = ["AppState", "Reading", "LocalStateStore", "InvalidBackupFormat"]
