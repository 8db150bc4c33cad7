"""
Result Ranking
Orders merged results by seeders, unknown seeder counts last
"""
from typing import Iterable, List, Tuple

from ..models.search_result import NormalizedResult


def seeders_sort_key(result: NormalizedResult) -> Tuple[int, int]:
    """
    Sort key for rank():
    1. Known seeder counts before unknown ones
    2. Within known counts, more seeders first
    """
    if result.seeders is None:
        return (1, 0)
    return (0, -result.seeders)


def rank(results: Iterable[NormalizedResult]) -> List[NormalizedResult]:
    """
    Return a new list sorted by descending seeders.

    Ties keep their insertion order (sorted() is stable), so the same input
    always yields the same sequence. The input is not modified.
    """
    return sorted(results, key=seeders_sort_key)
