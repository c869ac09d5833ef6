"""
Configuration centralisée du service de méta-recherche

Ce package contient:
- Settings: Gestionnaire de configuration avec support des variables d'environnement
- Dataclasses de configuration pour tous les composants
"""

from .settings import (
    settings,
    Settings,
    ServiceConfig,
    SearchEngineConfig,
    CacheConfig,
    AggregationConfig,
    StorageConfig,
)

__all__ = [
    "settings",
    "Settings",
    "ServiceConfig",
    "SearchEngineConfig",
    "CacheConfig",
    "AggregationConfig",
    "StorageConfig",
]
