import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .models import EngineDescriptor, Query, SearchTier, TierOutcome
from .orchestrator import FanOutOrchestrator
from .ranking import ResultRanker
from .registry import ALL_ENGINES, DEFAULT_ENGINES, EngineRegistry
from ..exceptions import AllProvidersUnreachable, ProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierPlan:
    tier: SearchTier
    engines: Tuple[EngineDescriptor, ...]
    limit: Optional[int]


class FallbackController:
    """
    Chooses which engines to query and escalates when a tier under-delivers.

    Tiers, in order:
      requested - the single engine the caller named (no result cap)
      curated   - the curated subset of reliable engines
      full      - every registered engine

    A tier that fails or returns nothing hands over to the next one when
    fallback is enabled. Every failure kind escalates, permanent ones
    (UNSUPPORTED) included.
    """

    def __init__(
        self,
        registry: EngineRegistry,
        orchestrator: FanOutOrchestrator,
        curated_result_cap: int = 15,
        full_result_cap: int = 20,
    ):
        self.registry = registry
        self.orchestrator = orchestrator
        self.curated_result_cap = curated_result_cap
        self.full_result_cap = full_result_cap

    def plan(self, selector: str, fallback: bool = True) -> List[TierPlan]:
        """Ordered tiers to attempt for an engine selector."""
        curated = TierPlan(SearchTier.CURATED, tuple(self.registry.curated()), self.curated_result_cap)
        full = TierPlan(SearchTier.FULL, tuple(self.registry.descriptors()), self.full_result_cap)

        if selector == ALL_ENGINES:
            return [full]

        if selector == DEFAULT_ENGINES:
            return [curated, full] if fallback else [curated]

        requested = TierPlan(SearchTier.REQUESTED, (self.registry.descriptor(selector),), None)
        return [requested, curated, full] if fallback else [requested]

    async def run(self, query: Query, selector: str, fallback: bool = True) -> TierOutcome:
        """
        Walk the tiers until one yields at least one result.

        Returns:
            TierOutcome of the first productive tier, or an empty outcome when
            some provider answered but nothing was found anywhere

        Raises:
            AllProvidersUnreachable: every leg of every attempted tier failed
        """
        ranker = ResultRanker()
        attempted: List[SearchTier] = []
        failures: List[Tuple[EngineDescriptor, ProviderError]] = []
        last_reachable: Optional[TierOutcome] = None

        for plan in self.plan(selector, fallback):
            if not plan.engines:
                logger.warning(f"Tier '{plan.tier.value}' has no engines, skipping")
                continue

            attempted.append(plan.tier)
            logger.info(
                f"Searching tier '{plan.tier.value}' for '{query.text}' "
                f"with {[engine.name for engine in plan.engines]}"
            )

            try:
                fan_out = await self.orchestrator.run(query, plan.engines)
            except AllProvidersUnreachable as e:
                failures.extend(e.failures)
                logger.warning(f"Tier '{plan.tier.value}' unreachable for '{query.text}'")
                continue

            failures.extend(fan_out.failures)
            merged = ranker.rank(fan_out.successful_results, plan.limit)
            outcome = TierOutcome(
                results=merged,
                tier=plan.tier,
                attempted_tiers=list(attempted),
                working_engines=list(fan_out.working_engines),
                failures=list(failures),
            )

            if merged:
                logger.info(
                    f"Combined results from {len(fan_out.working_engines)} engines: "
                    f"{len(merged)} unique results (tier '{plan.tier.value}')"
                )
                return outcome

            logger.warning(f"Tier '{plan.tier.value}' returned no results for '{query.text}'")
            last_reachable = outcome

        if last_reachable is not None:
            last_reachable.attempted_tiers = list(attempted)
            last_reachable.failures = list(failures)
            return last_reachable

        raise AllProvidersUnreachable(failures)
