"""
Search distribution for Janitarr.

Splits a per-category search limit across servers in proportion to how
many items each one has, using the largest-remainder method. Every server
with work gets at least one search whenever the limit allows it.

Ties are always broken by server order (earlier server wins), both when
handing out remainder slots and when choosing which servers get a single
search under a very small limit.
"""

import math
from typing import List, Sequence

from ..errors import InvalidLimitsError


def allocate(counts: Sequence[int], limit: int) -> List[int]:
    """
    Return how many items each server should search.

    counts[i] is the number of available items on server i; the result has
    the same length and order. sum(result) == min(sum(counts), limit).
    """
    if limit < 0:
        raise InvalidLimitsError(f"limit must not be negative (got {limit})")
    if any(c < 0 for c in counts):
        raise InvalidLimitsError("item counts must not be negative")

    allocation = [0] * len(counts)
    eligible = [i for i, c in enumerate(counts) if c > 0]
    total = sum(counts)

    if limit == 0 or not eligible:
        return allocation

    # Limit covers everything
    if total <= limit:
        return list(counts)

    # Fewer slots than servers: one each for the biggest backlogs
    if limit < len(eligible):
        ranked = sorted(eligible, key=lambda i: (-counts[i], i))
        for i in ranked[:limit]:
            allocation[i] = 1
        return allocation

    quotas = {i: limit * counts[i] / total for i in eligible}
    for i in eligible:
        allocation[i] = max(1, math.floor(quotas[i]))

    # Minimum-of-one bumps can overshoot; shrink the largest first
    excess = sum(allocation) - limit
    while excess > 0:
        shrinkable = [i for i in eligible if allocation[i] > 1]
        # Largest allocation first; among equals the later server gives way
        i = max(shrinkable, key=lambda i: (allocation[i], i))
        allocation[i] -= 1
        excess -= 1

    # Hand out what floor-division left over, largest fraction first
    remaining = limit - sum(allocation)
    order = sorted(eligible, key=lambda i: (-(quotas[i] - allocation[i]), i))
    while remaining > 0:
        progressed = False
        for i in order:
            if remaining == 0:
                break
            if allocation[i] < counts[i]:
                allocation[i] += 1
                remaining -= 1
                progressed = True
        if not progressed:
            break

    return allocation


def distribute_round_robin(item_ids: Sequence[int], limit: int,
                           server_count: int) -> List[List[int]]:
    """Deal up to `limit` item ids across `server_count` buckets in turn."""
    if server_count <= 0 or limit <= 0 or not item_ids:
        return []

    buckets: List[List[int]] = [[] for _ in range(server_count)]
    for index, item_id in enumerate(item_ids[:limit]):
        buckets[index % server_count].append(item_id)
    return buckets
