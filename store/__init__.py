# HEARTH v1.0
from store.apps import AppStore, AppStatus
from store.db import Database
from store.history import RebuildHistory

__all__ = ['AppStore', 'AppStatus', 'Database', 'RebuildHistory']
