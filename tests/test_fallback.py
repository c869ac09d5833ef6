"""Tests for tier selection and escalation."""

import pytest

from metasearch.exceptions import AllProvidersUnreachable, ProviderErrorKind
from metasearch.search.fallback import FallbackController
from metasearch.search.models import SearchTier
from metasearch.search.orchestrator import FanOutOrchestrator

from tests.conftest import FakeProvider, failing, hits, make_registry


def controller_for(*providers, leg_timeout=30.0):
    registry = make_registry(*providers)
    return FallbackController(registry, FanOutOrchestrator(registry, leg_timeout=leg_timeout))


class TestPlan:
    def test_all_goes_straight_to_full(self):
        controller = controller_for(FakeProvider("searx"), FakeProvider("bing"), FakeProvider("google"))
        plans = controller.plan("all")
        assert [p.tier for p in plans] == [SearchTier.FULL]
        assert plans[0].limit == 20
        assert [e.name for e in plans[0].engines] == ["bing", "google", "searx"]

    def test_default_starts_with_curated(self):
        controller = controller_for(FakeProvider("searx"), FakeProvider("bing"), FakeProvider("ecosia"))
        assert [p.tier for p in controller.plan("default")] == [SearchTier.CURATED, SearchTier.FULL]
        assert [p.tier for p in controller.plan("default", fallback=False)] == [SearchTier.CURATED]
        assert [e.name for e in controller.plan("default")[0].engines] == ["searx", "bing", "ecosia"]

    def test_named_engine_has_no_cap(self):
        controller = controller_for(FakeProvider("bing"))
        plans = controller.plan("bing")
        assert [p.tier for p in plans] == [SearchTier.REQUESTED, SearchTier.CURATED, SearchTier.FULL]
        assert plans[0].limit is None
        assert [p.tier for p in controller.plan("bing", fallback=False)] == [SearchTier.REQUESTED]


class TestFallbackController:
    @pytest.mark.asyncio
    async def test_curated_scenario_with_timeout(self, query):
        controller = controller_for(
            FakeProvider("searx", hits("searx", 10)),
            FakeProvider("bing", hits("bing", 9)),
            FakeProvider("ecosia", hits("ecosia", 5), delay=5),
            leg_timeout=0.05,
        )

        outcome = await controller.run(query, "default")

        assert outcome.tier == SearchTier.CURATED
        assert len(outcome.results) == 15
        assert [e.name for e in outcome.working_engines] == ["searx", "bing"]
        assert outcome.failures[0][1].kind == ProviderErrorKind.TIMEOUT
        # bing (1) outranks searx (7)
        assert [r.engine.name for r in outcome.results[:9]] == ["bing"] * 9

    @pytest.mark.asyncio
    async def test_requested_engine_is_the_only_leg(self, query):
        bing = FakeProvider("bing", hits("bing", 30))
        searx = FakeProvider("searx", hits("searx", 3))
        controller = controller_for(bing, searx)

        outcome = await controller.run(query, "bing")

        assert outcome.tier == SearchTier.REQUESTED
        assert len(outcome.results) == 30
        assert searx.calls == []

    @pytest.mark.asyncio
    async def test_requested_failure_escalates_to_curated(self, query):
        controller = controller_for(
            failing("google"),
            FakeProvider("searx", hits("searx", 2)),
        )

        outcome = await controller.run(query, "google")

        assert outcome.tier == SearchTier.CURATED
        assert outcome.attempted_tiers == [SearchTier.REQUESTED, SearchTier.CURATED]
        assert [d.name for d, _ in outcome.failures] == ["google"]

    @pytest.mark.asyncio
    async def test_permanent_failure_also_escalates(self, query):
        controller = controller_for(
            failing("qwant", ProviderErrorKind.UNSUPPORTED),
            FakeProvider("searx", hits("searx", 2)),
        )

        outcome = await controller.run(query, "qwant")

        assert outcome.tier == SearchTier.CURATED

    @pytest.mark.asyncio
    async def test_empty_curated_escalates_to_full(self, query):
        google = FakeProvider("google", hits("google", 25))
        controller = controller_for(FakeProvider("searx"), FakeProvider("bing"), google)

        outcome = await controller.run(query, "default")

        assert outcome.tier == SearchTier.FULL
        assert len(outcome.results) == 20
        assert outcome.attempted_tiers == [SearchTier.CURATED, SearchTier.FULL]

    @pytest.mark.asyncio
    async def test_no_fallback_stops_after_first_tier(self, query):
        searx = FakeProvider("searx", hits("searx", 2))
        controller = controller_for(failing("google"), searx)

        with pytest.raises(AllProvidersUnreachable):
            await controller.run(query, "google", fallback=False)
        assert searx.calls == []

    @pytest.mark.asyncio
    async def test_nothing_found_anywhere_is_empty_success(self, query):
        controller = controller_for(FakeProvider("searx"), failing("bing"), FakeProvider("google"))

        outcome = await controller.run(query, "default")

        assert outcome.results == []
        assert outcome.tier == SearchTier.FULL
        assert outcome.attempted_tiers == [SearchTier.CURATED, SearchTier.FULL]

    @pytest.mark.asyncio
    async def test_every_tier_unreachable_raises(self, query):
        controller = controller_for(failing("searx"), failing("bing"), failing("google"))

        with pytest.raises(AllProvidersUnreachable) as exc_info:
            await controller.run(query, "bing")

        failed = [d.name for d, _ in exc_info.value.failures]
        assert failed.count("bing") == 3
        assert "google" in failed

    @pytest.mark.asyncio
    async def test_tier_without_engines_is_skipped(self, query):
        registry = make_registry(FakeProvider("google", hits("google", 2)), curated=())
        controller = FallbackController(registry, FanOutOrchestrator(registry))

        outcome = await controller.run(query, "default")

        assert outcome.tier == SearchTier.FULL
        assert outcome.attempted_tiers == [SearchTier.FULL]
