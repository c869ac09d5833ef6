import logging
from typing import Dict, Iterable, List, Optional, TYPE_CHECKING

from .models import EngineDescriptor
from ..exceptions import ValidationError

if TYPE_CHECKING:
    from .providers import SearchProvider
    from ..config.settings import Settings

logger = logging.getLogger(__name__)

# Canonical trust ordering, most reliable first
CANONICAL_ENGINE_ORDER = (
    "bing",
    "google",
    "duckduckgo",
    "yahoo",
    "brave",
    "startpage",
    "searx",
    "qwant",
    "ecosia",
    "swisscows",
    "mojeek",
    "yandex",
    "baidu",
    "naver",
    "seznam",
    "aol",
    "ask",
)

ALL_ENGINES = "all"
DEFAULT_ENGINES = "default"
AGGREGATE_SELECTORS = (ALL_ENGINES, DEFAULT_ENGINES)


def canonical_reliability() -> Dict[str, int]:
    return {name: rank for rank, name in enumerate(CANONICAL_ENGINE_ORDER, start=1)}


def describe_engine(name: str) -> EngineDescriptor:
    """Descriptor from the canonical table; unlisted engines rank after all listed ones."""
    table = canonical_reliability()
    return EngineDescriptor(name=name, reliability_rank=table.get(name, len(table) + 1))


class EngineRegistry:
    """The set of known engines and the provider serving each one.

    Built once at startup and handed to the orchestrator and fallback
    controller; nothing here is process-global.
    """

    def __init__(self, providers: Iterable["SearchProvider"], curated: Optional[Iterable[str]] = None):
        self._providers: Dict[str, "SearchProvider"] = {}
        for provider in providers:
            name = provider.descriptor.name
            if name in self._providers:
                raise ValueError(f"Engine registered twice: {name}")
            self._providers[name] = provider

        curated_names = list(curated or [])
        missing = [name for name in curated_names if name not in self._providers]
        if missing:
            logger.warning(f"Curated engines not registered, ignored: {missing}")
        self._curated = [name for name in curated_names if name in self._providers]

    def __contains__(self, name: str) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    def is_known(self, name: str) -> bool:
        return name in self._providers

    def provider(self, name: str) -> "SearchProvider":
        try:
            return self._providers[name]
        except KeyError:
            raise ValidationError("engine", f"Unsupported search engine: {name}") from None

    def descriptor(self, name: str) -> EngineDescriptor:
        return self.provider(name).descriptor

    def descriptors(self) -> List[EngineDescriptor]:
        """All registered engines, most reliable first."""
        return sorted(
            (provider.descriptor for provider in self._providers.values()),
            key=lambda descriptor: (descriptor.reliability_rank, descriptor.name),
        )

    def curated(self) -> List[EngineDescriptor]:
        """The curated subset, in configured (submission) order."""
        return [self._providers[name].descriptor for name in self._curated]

    def selectors(self) -> List[str]:
        return [descriptor.name for descriptor in self.descriptors()] + list(AGGREGATE_SELECTORS)

    async def aclose(self):
        for provider in self._providers.values():
            try:
                await provider.aclose()
            except Exception as e:
                logger.warning(f"Error closing provider {provider.descriptor.name}: {e}")


def build_registry(settings: "Settings") -> EngineRegistry:
    """Instantiate one provider per enabled engine for the configured method."""
    from .providers import BrowserPool, BrowserProvider, HtmlScrapingProvider

    aggregation = settings.get_aggregation_config()
    method = aggregation.provider_method
    pool = BrowserPool() if method == "browser" else None

    providers = []
    for engine_config in settings.get_enabled_search_engines():
        descriptor = describe_engine(engine_config.name)
        if pool is not None:
            providers.append(BrowserProvider(descriptor, engine_config, pool))
        else:
            providers.append(HtmlScrapingProvider(descriptor, engine_config))

    logger.info(f"Registered {len(providers)} engines using method '{method}'")
    return EngineRegistry(providers, curated=aggregation.curated_engines)
