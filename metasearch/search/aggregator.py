import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from .cache import SearchCache, build_cache_key
from .fallback import FallbackController
from .models import EngineDescriptor, MergedResult, Query, SearchOutcome, TierOutcome
from .orchestrator import FanOutOrchestrator
from .registry import AGGREGATE_SELECTORS, DEFAULT_ENGINES, EngineRegistry, build_registry
from ..exceptions import StorageError, ValidationError
from ..storage.history import HistoryStore, Preferences
from ..utils.normalizer import query_normalizer

logger = logging.getLogger(__name__)

MIN_RESULTS_PER_PAGE = 5
MAX_RESULTS_PER_PAGE = 50


class AggregationEngine:
    """
    Orchestrates a search request from cache lookup to history persistence.

    CacheCheck -> Dispatch(tier...) -> Merge -> Persist -> Done. A cache hit
    skips dispatch but is still written to the history. History writes run
    in the background and never affect the response.
    """

    def __init__(
        self,
        registry: EngineRegistry,
        cache: Optional[SearchCache] = None,
        store: Optional[HistoryStore] = None,
        leg_timeout: float = 30.0,
        curated_result_cap: int = 15,
        full_result_cap: int = 20,
        method: str = "scrape",
        fallback_default: bool = True,
        max_page: int = 10,
    ):
        self.registry = registry
        self.cache = cache
        self.store = store
        self.method = method
        self.fallback_default = fallback_default
        self.max_page = max_page
        self.orchestrator = FanOutOrchestrator(registry, leg_timeout=leg_timeout)
        self.controller = FallbackController(
            registry,
            self.orchestrator,
            curated_result_cap=curated_result_cap,
            full_result_cap=full_result_cap,
        )
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings) -> "AggregationEngine":
        """Wire registry, cache and store from a Settings instance."""
        aggregation = settings.get_aggregation_config()
        cache_config = settings.get_cache_config()
        storage_config = settings.get_storage_config()

        cache = None
        if cache_config.enabled:
            cache = SearchCache(
                default_ttl=cache_config.default_ttl,
                max_size=cache_config.max_memory_cache_size,
            )

        store = HistoryStore(storage_config.database_path) if storage_config.enabled else None

        return cls(
            build_registry(settings),
            cache=cache,
            store=store,
            leg_timeout=aggregation.leg_timeout,
            curated_result_cap=aggregation.curated_result_cap,
            full_result_cap=aggregation.full_result_cap,
            method=aggregation.provider_method,
            fallback_default=aggregation.fallback_enabled,
            max_page=aggregation.max_page,
        )

    async def initialize(self):
        """Prepare the history store; a broken store only disables history."""
        if self.store is None:
            return
        try:
            await self.store.initialize()
        except StorageError as e:
            logger.error(f"History store unavailable, history disabled: {e}")
            self.store = None

    async def search(
        self,
        text: str,
        engine: Optional[str] = None,
        page: int = 1,
        safe: Optional[bool] = None,
        client_id: Optional[str] = None,
        fallback: Optional[bool] = None,
    ) -> List[MergedResult]:
        """Merged, deduplicated and ranked results for a query."""
        outcome = await self.search_with_trace(
            text, engine=engine, page=page, safe=safe, client_id=client_id, fallback=fallback
        )
        return outcome.results

    async def search_with_trace(
        self,
        text: str,
        engine: Optional[str] = None,
        page: int = 1,
        safe: Optional[bool] = None,
        client_id: Optional[str] = None,
        fallback: Optional[bool] = None,
    ) -> SearchOutcome:
        """
        Performs a search and reports how the results were obtained.

        Args:
            text: The search query.
            engine: An engine name, "all" or "default". Falls back to the
                client's preferred engine when omitted.
            page: 1-based result page.
            safe: Safe search flag. Falls back to the client's preference.
            client_id: Caller identity for preferences and history.
            fallback: Whether to escalate through tiers. Defaults to config.

        Raises:
            ValidationError: bad input, before any provider is invoked
            AllProvidersUnreachable: no provider answered in any tier
        """
        normalized = query_normalizer.normalize(text or "")
        if not normalized:
            raise ValidationError("query", "Search query is required")
        if isinstance(page, bool) or not isinstance(page, int) or not 1 <= page <= self.max_page:
            raise ValidationError("page", f"Page must be an integer between 1 and {self.max_page}")
        if engine is not None:
            self._check_selector(engine)

        if engine is None or safe is None:
            preferences = await self._load_preferences(client_id)
            if engine is None:
                engine = self._preferred_selector(preferences)
            if safe is None:
                safe = preferences.safe_search

        if fallback is None:
            fallback = self.fallback_default

        query = Query(text=normalized, page=page, safe_search=bool(safe))
        cache_key = build_cache_key(self.method, engine, normalized, page, query.safe_search)

        if self.cache is not None:
            cached: Optional[TierOutcome] = await self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"Serving '{normalized}' ({engine}) from cache: {len(cached.results)} results")
                self._schedule_history(normalized, len(cached.results), cached.engine_used, client_id)
                return self._to_search_outcome(query, engine, cached, from_cache=True)

        logger.info(f"Search '{normalized}' engine={engine} page={page} safe={query.safe_search} fallback={fallback}")
        tier_outcome = await self.controller.run(query, engine, fallback)

        if self.cache is not None:
            await self.cache.set(cache_key, tier_outcome)

        self._schedule_history(normalized, len(tier_outcome.results), tier_outcome.engine_used, client_id)
        return self._to_search_outcome(query, engine, tier_outcome, from_cache=False)

    async def clear_cache(self) -> int:
        if self.cache is None:
            return 0
        return await self.cache.clear()

    async def cache_stats(self) -> Dict[str, Any]:
        if self.cache is None:
            return {"enabled": False}
        stats = await self.cache.get_stats()
        stats["enabled"] = True
        return stats

    def list_engines(self) -> List[EngineDescriptor]:
        return self.registry.descriptors()

    def selectors(self) -> List[str]:
        return self.registry.selectors()

    async def get_history(self, limit: int = 50, client_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if self.store is None:
            return []
        return await self.store.get_history(limit=limit, client_id=client_id)

    async def get_preferences(self, client_id: Optional[str]) -> Preferences:
        if self.store is None:
            return Preferences()
        return await self.store.get_preferences(client_id)

    async def update_preferences(self, client_id: str, partial: Dict[str, Any]) -> Preferences:
        """Validate then merge a partial preference update."""
        if "default_engine" in partial:
            self._check_selector(partial["default_engine"], field="default_engine")
        if "results_per_page" in partial:
            value = partial["results_per_page"]
            if (
                isinstance(value, bool)
                or not isinstance(value, int)
                or not MIN_RESULTS_PER_PAGE <= value <= MAX_RESULTS_PER_PAGE
            ):
                raise ValidationError(
                    "results_per_page",
                    f"Results per page must be between {MIN_RESULTS_PER_PAGE} and {MAX_RESULTS_PER_PAGE}",
                )
        if "safe_search" in partial and not isinstance(partial["safe_search"], bool):
            raise ValidationError("safe_search", "Safe search must be a boolean")

        if self.store is None:
            current = Preferences()
            return Preferences(
                default_engine=partial.get("default_engine", current.default_engine),
                results_per_page=partial.get("results_per_page", current.results_per_page),
                safe_search=partial.get("safe_search", current.safe_search),
            )
        return await self.store.update_preferences(client_id, partial)

    async def drain_background_tasks(self):
        """Wait for pending history writes."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def cleanup(self):
        """Cleanup resources."""
        logger.info("Cleaning up aggregation engine resources.")
        await self.drain_background_tasks()
        await self.registry.aclose()

    def _check_selector(self, selector: str, field: str = "engine"):
        if not isinstance(selector, str) or not (
            selector in AGGREGATE_SELECTORS or self.registry.is_known(selector)
        ):
            raise ValidationError(field, f"Unsupported search engine: {selector}")

    def _preferred_selector(self, preferences: Preferences) -> str:
        selector = preferences.default_engine
        if selector in AGGREGATE_SELECTORS or self.registry.is_known(selector):
            return selector
        logger.warning(f"Preferred engine '{selector}' is no longer registered, using default")
        return DEFAULT_ENGINES

    async def _load_preferences(self, client_id: Optional[str]) -> Preferences:
        if self.store is None or client_id is None:
            return Preferences()
        try:
            return await self.store.get_preferences(client_id)
        except StorageError as e:
            logger.warning(f"Could not read preferences for {client_id}: {e}")
            return Preferences()

    def _schedule_history(self, query: str, result_count: int, engine_used: Optional[str], client_id: Optional[str]):
        if self.store is None:
            return
        task = asyncio.create_task(self._record_history(query, result_count, engine_used, client_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _record_history(self, query: str, result_count: int, engine_used: Optional[str], client_id: Optional[str]):
        try:
            await self.store.record_history(query, result_count, engine_used, client_id)
        except Exception as e:
            logger.warning(f"Failed to record search history for '{query}': {e}")

    @staticmethod
    def _to_search_outcome(query: Query, selector: str, outcome: TierOutcome, from_cache: bool) -> SearchOutcome:
        return SearchOutcome(
            query=query,
            selector=selector,
            results=list(outcome.results),
            from_cache=from_cache,
            tier=outcome.tier,
            attempted_tiers=list(outcome.attempted_tiers),
            working_engines=list(outcome.working_engines),
            failures=list(outcome.failures),
        )
