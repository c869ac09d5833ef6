"""Pytest configuration and shared fakes for the meta search tests."""

import asyncio
from typing import List, Optional, Sequence, Tuple

import pytest

from metasearch.exceptions import ProviderError, ProviderErrorKind
from metasearch.search.models import EngineDescriptor, Query, RawResult
from metasearch.search.providers import SearchProvider
from metasearch.search.registry import EngineRegistry, describe_engine


def make_raw(
    engine: str,
    url: str,
    title: str,
    snippet: str = "",
    source_rank: int = 1,
    reliability_rank: Optional[int] = None,
) -> RawResult:
    descriptor = describe_engine(engine)
    if reliability_rank is not None:
        descriptor = EngineDescriptor(engine, reliability_rank)
    return RawResult(title=title, url=url, snippet=snippet, source_rank=source_rank, engine=descriptor)


class FakeProvider(SearchProvider):
    """In-memory provider returning canned results, raising, or hanging."""

    def __init__(
        self,
        name: str,
        hits: Sequence[Tuple[str, str, str]] = (),
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        super().__init__(describe_engine(name))
        self.hits = list(hits)
        self.error = error
        self.delay = delay
        self.calls: List[Query] = []
        self.closed = False

    async def search(self, query: Query) -> List[RawResult]:
        self.calls.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [
            RawResult(title=title, url=url, snippet=snippet, source_rank=position, engine=self.descriptor)
            for position, (title, url, snippet) in enumerate(self.hits, start=1)
        ]

    async def aclose(self):
        self.closed = True


def hits(engine: str, count: int, snippet: str = "a descriptive snippet that is long enough"):
    """`count` distinct (title, url, snippet) triples for one engine."""
    return [(f"{engine} result {i}", f"https://{engine}.example/{i}", snippet) for i in range(1, count + 1)]


def failing(name: str, kind: ProviderErrorKind = ProviderErrorKind.NETWORK) -> FakeProvider:
    return FakeProvider(name, error=ProviderError(kind, "boom"))


def make_registry(*providers: SearchProvider, curated=("searx", "bing", "ecosia")) -> EngineRegistry:
    return EngineRegistry(providers, curated=curated)


@pytest.fixture
def query():
    return Query(text="python asyncio")
