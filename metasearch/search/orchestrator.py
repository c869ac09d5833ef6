import asyncio
import logging
import time
from typing import Iterable, List

from .models import EngineDescriptor, FanOutResult, ProviderOutcome, Query
from .registry import EngineRegistry
from ..exceptions import AllProvidersUnreachable, ProviderError, ProviderErrorKind, ValidationError

logger = logging.getLogger(__name__)


class FanOutOrchestrator:
    """
    Runs one provider call per engine concurrently and waits for all of them.

    Every leg settles on its own (success, failure or timeout); a failing leg
    never cancels its siblings. The union of successful legs is returned in
    submission order, not completion order.
    """

    def __init__(self, registry: EngineRegistry, leg_timeout: float = 30.0):
        self.registry = registry
        self.leg_timeout = leg_timeout

    async def run(self, query: Query, descriptors: Iterable[EngineDescriptor]) -> FanOutResult:
        """
        Fan a query out to the given engines.

        Args:
            query: The query every leg receives
            descriptors: Engines to invoke, in submission order

        Returns:
            FanOutResult with the concatenated results of the legs that succeeded

        Raises:
            AllProvidersUnreachable: no leg succeeded
        """
        legs = self._unique(descriptors)
        if not legs:
            raise AllProvidersUnreachable([])

        logger.debug(f"Dispatching {len(legs)} legs for '{query.text}': {[leg.name for leg in legs]}")
        outcomes: List[ProviderOutcome] = await asyncio.gather(
            *(self._run_leg(query, descriptor) for descriptor in legs)
        )

        fan_out = FanOutResult()
        for outcome in outcomes:
            if outcome.ok:
                fan_out.successful_results.extend(outcome.results)
                fan_out.working_engines.append(outcome.descriptor)
            else:
                fan_out.failures.append((outcome.descriptor, outcome.error))

        if not fan_out.working_engines:
            raise AllProvidersUnreachable(fan_out.failures)

        if fan_out.failures:
            logger.warning(
                f"Partial fan-out for '{query.text}': "
                f"{len(fan_out.working_engines)}/{len(legs)} engines answered, "
                f"failed: {[descriptor.name for descriptor, _ in fan_out.failures]}"
            )
        return fan_out

    async def _run_leg(self, query: Query, descriptor: EngineDescriptor) -> ProviderOutcome:
        """Invoke one provider under its own timeout; never raises."""
        start_time = time.monotonic()
        try:
            provider = self.registry.provider(descriptor.name)
            results = await asyncio.wait_for(provider.search(query), timeout=self.leg_timeout)
        except asyncio.TimeoutError:
            error = ProviderError(
                ProviderErrorKind.TIMEOUT,
                f"no answer within {self.leg_timeout:.1f}s",
                engine=descriptor.name,
            )
            logger.warning(f"{descriptor.name} search timed out")
            return ProviderOutcome.failure(descriptor, error)
        except ValidationError as e:
            error = ProviderError(ProviderErrorKind.UNSUPPORTED, e.message, engine=descriptor.name)
            logger.warning(f"{descriptor.name} is not registered")
            return ProviderOutcome.failure(descriptor, error)
        except ProviderError as error:
            if error.engine is None:
                error.engine = descriptor.name
            if error.is_permanent:
                logger.warning(f"{descriptor.name} cannot serve this request: {error.message}")
            else:
                logger.warning(f"{descriptor.name} search failed: {error}")
            return ProviderOutcome.failure(descriptor, error)
        except Exception as e:
            logger.error(f"{descriptor.name} search raised unexpectedly: {e}", exc_info=True)
            error = ProviderError(ProviderErrorKind.NETWORK, str(e) or type(e).__name__, engine=descriptor.name)
            return ProviderOutcome.failure(descriptor, error)

        logger.debug(
            f"{descriptor.name} returned {len(results)} results in {time.monotonic() - start_time:.2f}s"
        )
        return ProviderOutcome.success(descriptor, results)

    @staticmethod
    def _unique(descriptors: Iterable[EngineDescriptor]) -> List[EngineDescriptor]:
        seen = set()
        unique = []
        for descriptor in descriptors:
            if descriptor.name in seen:
                continue
            seen.add(descriptor.name)
            unique.append(descriptor)
        return unique
