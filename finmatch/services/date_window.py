"""Date bucketing for pairwise matching.

Items are sorted by date and split into buckets anchored on their first
item: an item joins the current bucket while it is within ``tolerance``
days of the anchor. Two items within tolerance of each other can only sit
in the same or in adjacent buckets, so comparing those is enough to find
every close pair without an all-pairs scan.
"""

from collections.abc import Callable, Iterator
from datetime import date
from typing import TypeVar

L = TypeVar("L")
R = TypeVar("R")


def bucket_by_date(items: list, date_of: Callable, tolerance: int) -> list[list]:
    buckets: list[list] = []
    anchor: date | None = None
    for item in sorted(items, key=date_of):
        item_date = date_of(item)
        if anchor is None or (item_date - anchor).days > tolerance:
            buckets.append([])
            anchor = item_date
        buckets[-1].append(item)
    return buckets


def pairs_within_window(
    left: list[L],
    right: list[R],
    date_of: Callable,
    tolerance: int,
) -> Iterator[tuple[L, R]]:
    """Yield every (left, right) pair whose dates are at most ``tolerance`` days apart."""
    tagged = [(0, item) for item in left] + [(1, item) for item in right]
    buckets = bucket_by_date(tagged, lambda entry: date_of(entry[1]), tolerance)
    split = [
        ([item for side, item in bucket if side == 0], [item for side, item in bucket if side == 1])
        for bucket in buckets
    ]

    for index, (lefts, rights) in enumerate(split):
        combos = [(lefts, rights)]
        if index + 1 < len(split):
            next_lefts, next_rights = split[index + 1]
            combos += [(lefts, next_rights), (next_lefts, rights)]
        for left_items, right_items in combos:
            for item in left_items:
                for other in right_items:
                    if abs((date_of(item) - date_of(other)).days) <= tolerance:
                        yield item, other
