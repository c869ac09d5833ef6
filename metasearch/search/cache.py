import logging
import hashlib
import time
from typing import Any, Callable, Dict, Optional

from ..utils.normalizer import query_normalizer

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "metasearch:"

def build_cache_key(method: str, selector: str, text: str, page: int, safe_search: bool) -> str:
    """Clé composite déterministe (méthode, moteur, requête normalisée, page, safe)"""
    return f"{method}:{selector}:{query_normalizer.fold(text)}:{page}:{str(bool(safe_search)).lower()}"

class SearchCache:
    """Cache mémoire à durée de vie fixe pour les résultats agrégés"""

    def __init__(
        self,
        default_ttl: int = 300,
        max_size: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.clock = clock
        self._entries: Dict[str, Dict[str, Any]] = {}
        self.hits = 0
        self.misses = 0

        logger.info(f"Cache initialisé (mémoire, TTL: {default_ttl}s)")

    def _generate_cache_key(self, key: str) -> str:
        """Génère une clé de cache hashée"""
        # Hash de la clé pour éviter les caractères problématiques
        key_hash = hashlib.md5(key.encode()).hexdigest()

        return f"{CACHE_KEY_PREFIX}{key_hash}"

    async def get(self, key: str) -> Optional[Any]:
        """Récupère une valeur du cache"""
        cache_key = self._generate_cache_key(key)

        cached_item = self._entries.get(cache_key)
        if cached_item is not None:
            # Vérifier expiration
            if cached_item["expires_at"] > self.clock():
                self.hits += 1
                logger.debug(f"Cache hit: {key}")
                return cached_item["data"]
            else:
                # Supprimer l'élément expiré
                del self._entries[cache_key]

        self.misses += 1
        logger.debug(f"Cache miss: {key}")
        return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Stocke une valeur dans le cache"""
        if ttl is None:
            ttl = self.default_ttl

        cache_key = self._generate_cache_key(key)

        # Nettoyer le cache si trop plein
        if cache_key not in self._entries and len(self._entries) >= self.max_size:
            self._cleanup()

        now = self.clock()
        self._entries[cache_key] = {
            "data": value,
            "expires_at": now + ttl,
            "created_at": now
        }
        logger.debug(f"Cache set: {key} (TTL: {ttl}s)")
        return True

    async def clear(self) -> int:
        """Vide tout le cache, sans condition"""
        count = len(self._entries)
        self._entries.clear()
        logger.info(f"Cache vidé: {count} entrées supprimées")
        return count

    async def get_stats(self) -> Dict[str, Any]:
        """Retourne des statistiques sur le cache"""
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "default_ttl": self.default_ttl,
            "hits": self.hits,
            "misses": self.misses,
        }

    def _cleanup(self):
        """Supprime les éléments expirés puis, si besoin, les plus anciens"""
        current_time = self.clock()

        # Supprimer les éléments expirés
        expired_keys = [key for key, item in self._entries.items() if item["expires_at"] <= current_time]
        for key in expired_keys:
            del self._entries[key]

        # Si encore trop d'éléments, supprimer les 20% plus anciens
        if len(self._entries) >= self.max_size:
            items = sorted(self._entries.items(), key=lambda item: item[1]["created_at"])
            to_remove = max(1, len(items) // 5)
            for key, _ in items[:to_remove]:
                del self._entries[key]

        logger.debug(f"Cache nettoyé: {len(expired_keys)} expirés, taille: {len(self._entries)}")
