"""
Persistance de l'historique de recherche et des préférences clients
"""

from .history import HistoryStore, Preferences

__all__ = [
    "HistoryStore",
    "Preferences",
]
