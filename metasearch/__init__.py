"""
Meta Search - Recherche web agrégée multi-moteurs

Ce package interroge plusieurs moteurs de recherche en parallèle, tolère
les pannes partielles, déduplique et classe les résultats, les met en
cache et bascule vers des ensembles de moteurs plus larges si besoin.

Composants principaux:
- search: Fournisseurs, orchestration, classement, repli et cache
- storage: Historique des recherches et préférences clients
- config: Configuration centralisée
"""

__version__ = "1.0.0"
__author__ = "Meta Search Team"

# Imports principaux pour faciliter l'utilisation
from .exceptions import (
    AggregationError,
    AllProvidersUnreachable,
    MetaSearchError,
    ProviderError,
    ProviderErrorKind,
    StorageError,
    ValidationError,
)
from .search.aggregator import AggregationEngine

__all__ = [
    "AggregationEngine",
    "AggregationError",
    "AllProvidersUnreachable",
    "MetaSearchError",
    "ProviderError",
    "ProviderErrorKind",
    "StorageError",
    "ValidationError",
    "__version__",
]
