"""Watchlist alerting."""

from .alert_manager import Alert, AlertManager
from .watchlist import Watchlist, WatchlistEntry, WatchlistMatch

__all__ = [
    "Alert",
    "AlertManager",
    "Watchlist",
    "WatchlistEntry",
    "WatchlistMatch",
]
