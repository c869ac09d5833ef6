"""
Utilitaires pour la normalisation des requêtes

Ce package contient:
- QueryNormalizer: Normalisation des requêtes et des clés d'identité des résultats
"""

from .normalizer import QueryNormalizer, query_normalizer

__all__ = [
    "QueryNormalizer",
    "query_normalizer",
]
