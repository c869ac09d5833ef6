import re
import logging
import unicodedata

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r'\s+')

class QueryNormalizer:
    """Normalisation des requêtes et des champs de résultats"""

    def normalize(self, query: str) -> str:
        """Normalise une requête de recherche (espaces uniquement, casse conservée)"""
        if not query or not query.strip():
            return ""

        normalized = query.strip()

        # Suppression des espaces multiples
        normalized = _WHITESPACE.sub(' ', normalized)

        return normalized

    def fold(self, text: str) -> str:
        """Forme insensible à la casse et aux espaces, utilisée pour les clés"""
        if not text:
            return ""
        text = unicodedata.normalize('NFKC', text)
        return self.normalize(text).casefold()

query_normalizer = QueryNormalizer()
