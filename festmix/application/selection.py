import math
import random
from typing import List, Optional, Sequence, TypeVar

from festmix.domain.entities import SelectionMode


T = TypeVar("T")

POPULAR_SHARE = 0.5
DEEP_CUTS_SKIP_SHARE = 0.2


def build_pool(candidates: Sequence[T], quota: int, mode: Optional[SelectionMode] = None) -> List[T]:
    """Eligible subset of ranked ``candidates`` for the given selection mode.

    Candidates are expected in popularity order, most popular first.
    """
    total = len(candidates)
    mode = SelectionMode(mode) if mode else SelectionMode.BALANCED

    if mode is SelectionMode.POPULAR:
        return list(candidates[:max(quota, math.ceil(total * POPULAR_SHARE))])

    if mode is SelectionMode.DEEP_CUTS:
        remaining = list(candidates[math.floor(total * DEEP_CUTS_SKIP_SHARE):])
        if len(remaining) < quota:
            return list(candidates)
        return remaining

    return list(candidates)


def select_tracks(candidates: Sequence[T], quota: int,
                  mode: Optional[SelectionMode] = None,
                  rng: Optional[random.Random] = None) -> List[T]:
    """Randomly sample ``quota`` items from the mode's pool.

    Never returns more than ``min(quota, len(candidates))`` items and never
    repeats an item. ``rng`` makes the shuffle reproducible.
    """
    if not candidates or quota < 1:
        return []

    pool = build_pool(candidates, quota, mode)
    (rng or random).shuffle(pool)
    return pool[:quota]
