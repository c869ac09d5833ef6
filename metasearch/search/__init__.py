"""
Modules de recherche agrégée

Ce package contient tous les composants nécessaires pour:
- Interroger chaque moteur de recherche (fournisseurs HTTP ou navigateur)
- Lancer les requêtes en parallèle et tolérer les échecs partiels
- Dédupliquer et classer les résultats fusionnés
- Basculer vers des ensembles de moteurs plus larges
- Gérer le cache des résultats
"""

from .aggregator import AggregationEngine
from .cache import SearchCache, build_cache_key
from .fallback import FallbackController
from .models import (
    EngineDescriptor,
    MergedResult,
    Query,
    RawResult,
    SearchOutcome,
    SearchTier,
)
from .orchestrator import FanOutOrchestrator
from .providers import BrowserProvider, HtmlScrapingProvider, SearchProvider
from .ranking import ResultRanker, rank_results
from .registry import EngineRegistry, build_registry

__all__ = [
    "AggregationEngine",
    "SearchCache",
    "build_cache_key",
    "FallbackController",
    "EngineDescriptor",
    "MergedResult",
    "Query",
    "RawResult",
    "SearchOutcome",
    "SearchTier",
    "FanOutOrchestrator",
    "SearchProvider",
    "HtmlScrapingProvider",
    "BrowserProvider",
    "ResultRanker",
    "rank_results",
    "EngineRegistry",
    "build_registry",
]
