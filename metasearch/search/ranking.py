import logging
from typing import Iterable, List, Optional, Tuple

from .models import MergedResult, RawResult
from ..utils.normalizer import query_normalizer

logger = logging.getLogger(__name__)

# Snippets strictly longer than this count as "good" and sort first
SNIPPET_QUALITY_THRESHOLD = 20


def identity_key(result: RawResult) -> str:
    """Case- and whitespace-insensitive identity of a result (url + title)."""
    return f"{query_normalizer.fold(result.url)}\u0000{query_normalizer.fold(result.title)}"


def has_quality_snippet(result: RawResult) -> bool:
    return bool(result.snippet) and len(result.snippet) > SNIPPET_QUALITY_THRESHOLD


def deduplicate(results: Iterable[RawResult]) -> List[RawResult]:
    """Drop later duplicates; the first occurrence in input order wins."""
    seen = set()
    unique = []
    for result in results:
        key = identity_key(result)
        if key in seen:
            continue
        seen.add(key)
        unique.append(result)
    return unique


class ResultRanker:
    """Deduplicates and orders raw results from several engines.

    Ordering, by precedence:
      1. results with a snippet longer than SNIPPET_QUALITY_THRESHOLD first
      2. the engine descriptor's reliability rank, ascending
      3. the engine's own position for the result, ascending
    """

    def sort_key(self, result: RawResult) -> Tuple[int, int, int]:
        snippet_class = 0 if has_quality_snippet(result) else 1
        return snippet_class, result.engine.reliability_rank, result.source_rank

    def rank(self, results: Iterable[RawResult], limit: Optional[int] = None) -> List[MergedResult]:
        """
        Merge raw results into a final, densely ranked list.

        Args:
            results: Raw results, concatenated leg by leg in submission order
            limit: Maximum number of results to keep (None keeps everything)

        Returns:
            MergedResult list with ranks 1..N
        """
        raw = list(results)
        unique = deduplicate(raw)
        ordered = sorted(unique, key=self.sort_key)

        if limit is not None:
            ordered = ordered[:limit]

        merged = [MergedResult.from_raw(result, rank) for rank, result in enumerate(ordered, start=1)]

        logger.debug(f"Ranked {len(raw)} raw results into {len(merged)} unique results (limit={limit})")
        return merged


def rank_results(results: Iterable[RawResult], limit: Optional[int] = None) -> List[MergedResult]:
    """Convenience wrapper around ResultRanker.rank."""
    return ResultRanker().rank(results, limit)
