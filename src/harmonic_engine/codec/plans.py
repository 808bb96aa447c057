"""Carrier plans: deterministic choices of which bins carry data, in order.

Every plan starts from the usable positive bins ``1..upper`` (DC and Nyquist
excluded) shuffled by a seeded Fisher–Yates pass, then arranges a prefix of
the shuffle according to its geometry:

``auto``
    first ``count`` shuffled bins, sorted ascending.
``pentad7`` / ``pentad7+1``
    seven groups of seven, each sorted; ``+1`` prepends one anchor bin.
``merkaba125`` / ``merkaba125+3``
    125 bins laid into a 5×5×5 cube; ``+3`` prepends three anchors.

Anchors are taken from the rest of the shuffle, maximising the minimum
distance to the bins already chosen.  The length of a fixed plan never depends
on the seed.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from .common import CapacityError, UnknownPlanError, fisher_yates, make_rng, usable_bins

logger = logging.getLogger(__name__)

AUTO_SHUFFLE_SALT = 0xA5A5A5A5
PLAN_SHUFFLE_SALT = 0x7E571DEE

PENTAD_GROUPS = 7
PENTAD_PER_GROUP = 7
MERKABA_EDGE = 5

PLAN_CAPACITY: Dict[str, Optional[int]] = {
    "auto": None,
    "pentad7": PENTAD_GROUPS * PENTAD_PER_GROUP,
    "pentad7+1": PENTAD_GROUPS * PENTAD_PER_GROUP + 1,
    "merkaba125": MERKABA_EDGE**3,
    "merkaba125+3": MERKABA_EDGE**3 + 3,
}
_PLAN_ALIASES = {"pentad7-anchor": "pentad7+1"}


def normalize_plan_name(plan: Optional[str]) -> str:
    """Canonical lower-case plan name; ``None`` and ``""`` mean ``auto``."""

    if plan is None or plan == "":
        return "auto"
    if not isinstance(plan, str):
        raise UnknownPlanError(plan)
    name = plan.strip().lower()
    name = _PLAN_ALIASES.get(name, name)
    if name not in PLAN_CAPACITY:
        raise UnknownPlanError(plan)
    return name


def plan_capacity(plan: Optional[str]) -> Optional[int]:
    return PLAN_CAPACITY[normalize_plan_name(plan)]


def plan_meta(plan: Optional[str]) -> Optional[Dict[str, object]]:
    """Descriptive metadata recorded alongside a plan in manifests."""

    name = normalize_plan_name(plan)
    if name.startswith("pentad7"):
        return {
            "groups": PENTAD_GROUPS,
            "perGroup": PENTAD_PER_GROUP,
            "anchorAt": 0 if name == "pentad7+1" else None,
        }
    if name.startswith("merkaba125"):
        return {"groups": [MERKABA_EDGE] * 3, "anchors": 3 if name == "merkaba125+3" else 0}
    return None


def _shuffled_candidates(dim: int, seed: int, salt: int) -> List[int]:
    candidates = list(range(1, usable_bins(dim) + 1))
    return fisher_yates(candidates, make_rng((seed ^ salt) & 0xFFFFFFFF))


def auto_shuffle(dim: int, seed: int) -> List[int]:
    """Usable bins in the shuffled order the ``auto`` rule draws prefixes from."""

    return _shuffled_candidates(dim, seed, AUTO_SHUFFLE_SALT)


def select_carrier_bins(dim: int, seed: int, count: Optional[int] = None) -> List[int]:
    """The ``auto`` rule: ``count`` shuffled bins, sorted ascending."""

    shuffled = auto_shuffle(dim, seed)
    if count is None:
        count = len(shuffled)
    if count < 0:
        raise ValueError("count must be non-negative")
    return sorted(shuffled[: min(count, len(shuffled))])


def _min_distance(candidate: int, chosen: Sequence[int]) -> float:
    best = float("inf")
    for other in chosen:
        distance = abs(candidate - other)
        if distance < best:
            best = distance
            if best == 0:
                break
    return best


def _farthest(pool: Sequence[int], chosen: Sequence[int]) -> Optional[int]:
    # Strict comparison keeps the earliest candidate on ties.
    best: Optional[int] = None
    best_score = -1.0
    for candidate in pool:
        score = _min_distance(candidate, chosen)
        if score > best_score:
            best_score = score
            best = candidate
    return best


def _require(available: int, needed: int, plan: str) -> None:
    if available < needed:
        raise CapacityError(needed, available, plan)


def _pentad_plan(shuffled: List[int], anchored: bool, plan: str) -> List[int]:
    need = PENTAD_GROUPS * PENTAD_PER_GROUP
    _require(len(shuffled), need + (1 if anchored else 0), plan)
    carriers: List[int] = []
    for group in range(PENTAD_GROUPS):
        start = group * PENTAD_PER_GROUP
        carriers.extend(sorted(shuffled[start : start + PENTAD_PER_GROUP]))
    if anchored:
        anchor = _farthest(shuffled[need:], carriers)
        if anchor is not None:
            carriers.insert(0, anchor)
    return carriers


def _merkaba_plan(shuffled: List[int], anchors: int, plan: str) -> List[int]:
    need = MERKABA_EDGE**3
    _require(len(shuffled), need + anchors, plan)
    picked = sorted(shuffled[:need])
    edge = MERKABA_EDGE
    cube = [
        [[picked[(u * edge + v) * edge + w] for w in range(edge)] for v in range(edge)]
        for u in range(edge)
    ]
    carriers = [cube[u][v][w] for u in range(edge) for v in range(edge) for w in range(edge)]
    pool = shuffled[need:]
    chosen_anchors: List[int] = []
    for _ in range(anchors):
        anchor = _farthest(pool, carriers + chosen_anchors)
        if anchor is None:
            break
        chosen_anchors.append(anchor)
    return chosen_anchors + carriers


def carrier_plan(dim: int, seed: int, plan: Optional[str] = "auto", count: Optional[int] = None) -> List[int]:
    """Ordered carrier bins for ``plan`` at dimension ``dim``.

    ``count`` only applies to ``auto``; fixed plans always return their full
    capacity and callers slice the prefix they need.
    """

    if isinstance(dim, bool) or not isinstance(dim, int) or dim <= 0:
        raise ValueError("dim must be a positive integer")
    name = normalize_plan_name(plan)
    if name == "auto":
        return select_carrier_bins(dim, seed, count)
    shuffled = _shuffled_candidates(dim, seed, PLAN_SHUFFLE_SALT)
    if name in ("pentad7", "pentad7+1"):
        bins = _pentad_plan(shuffled, name == "pentad7+1", name)
    else:
        bins = _merkaba_plan(shuffled, 3 if name == "merkaba125+3" else 0, name)
    logger.debug("Carrier plan %s for dim=%s seed=%s: %s bins", name, dim, seed, len(bins))
    return bins


__all__ = [
    "AUTO_SHUFFLE_SALT",
    "PLAN_CAPACITY",
    "PLAN_SHUFFLE_SALT",
    "auto_shuffle",
    "carrier_plan",
    "normalize_plan_name",
    "plan_capacity",
    "plan_meta",
    "select_carrier_bins",
]
