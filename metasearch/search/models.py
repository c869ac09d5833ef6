from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import ProviderError


class SearchTier(str, Enum):
    """Fallback levels, in escalation order."""

    REQUESTED = "requested"
    CURATED = "curated"
    FULL = "full"


@dataclass(frozen=True)
class Query:
    text: str
    page: int = 1
    safe_search: bool = True


@dataclass(frozen=True)
class EngineDescriptor:
    """Identifies a provider. Lower reliability_rank means more trusted."""

    name: str
    reliability_rank: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "reliability_rank": self.reliability_rank}


@dataclass(frozen=True)
class RawResult:
    title: str
    url: str
    snippet: str
    source_rank: int
    engine: EngineDescriptor


@dataclass(frozen=True)
class MergedResult:
    title: str
    url: str
    snippet: str
    source_rank: int
    engine: EngineDescriptor
    rank: int

    @classmethod
    def from_raw(cls, raw: RawResult, rank: int) -> "MergedResult":
        return cls(
            title=raw.title,
            url=raw.url,
            snippet=raw.snippet,
            source_rank=raw.source_rank,
            engine=raw.engine,
            rank=rank,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "snippet": self.snippet,
            "rank": self.rank,
            "engine": self.engine.name,
            "original_rank": self.source_rank,
        }


@dataclass(frozen=True)
class ProviderOutcome:
    """Terminal state of one fan-out leg: either results or an error."""

    descriptor: EngineDescriptor
    results: Tuple[RawResult, ...] = ()
    error: Optional[ProviderError] = None

    @classmethod
    def success(cls, descriptor: EngineDescriptor, results) -> "ProviderOutcome":
        return cls(descriptor=descriptor, results=tuple(results))

    @classmethod
    def failure(cls, descriptor: EngineDescriptor, error: ProviderError) -> "ProviderOutcome":
        return cls(descriptor=descriptor, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FanOutResult:
    successful_results: List[RawResult] = field(default_factory=list)
    working_engines: List[EngineDescriptor] = field(default_factory=list)
    failures: List[Tuple[EngineDescriptor, ProviderError]] = field(default_factory=list)


@dataclass
class TierOutcome:
    """What the fallback controller settled on for one request."""

    results: List[MergedResult]
    tier: Optional[SearchTier]
    attempted_tiers: List[SearchTier] = field(default_factory=list)
    working_engines: List[EngineDescriptor] = field(default_factory=list)
    failures: List[Tuple[EngineDescriptor, ProviderError]] = field(default_factory=list)

    @property
    def engine_used(self) -> Optional[str]:
        if self.working_engines:
            return self.working_engines[0].name
        return None


@dataclass
class SearchOutcome:
    """Facade response: merged results plus a trace of how they were produced."""

    query: Query
    selector: str
    results: List[MergedResult]
    from_cache: bool = False
    tier: Optional[SearchTier] = None
    attempted_tiers: List[SearchTier] = field(default_factory=list)
    working_engines: List[EngineDescriptor] = field(default_factory=list)
    failures: List[Tuple[EngineDescriptor, ProviderError]] = field(default_factory=list)

    def trace(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.value if self.tier else None,
            "attempted_tiers": [tier.value for tier in self.attempted_tiers],
            "working_engines": [engine.name for engine in self.working_engines],
            "failed_engines": [error.to_dict() for _, error in self.failures],
            "cache_used": self.from_cache,
        }
