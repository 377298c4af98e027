"""
Challenge Selector - picks daily and weekly challenge animals from a manifest

Pure functions over a manifest (list of {"name", "probability"}); nothing
here touches storage. Weighted draws use the probability value itself as
the weight and sample with replacement, so the same animal can be drawn
more than once and ends up with ``count`` > 1 after consolidation.

Daily policy:
- 30% (only when a 40-49% pool exists): 1 animal from the 40-49% pool
- otherwise: 3 weighted draws from the 50%+ pool

Weekly policy (one roll r in [0, 1)):
- r < 0.2 with a 5-10% pool: 1 very rare animal + up to 2 common draws
- r < 0.7 with an 11-49% pool: 1-2 rare animals + 3-4 common draws
- otherwise: 5-7 common draws
"""
import logging
import random
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# Daily pools
DAILY_MODERATE_MIN = 40
DAILY_EASY_MIN = 50
DAILY_MODERATE_CHANCE = 0.3
DAILY_EASY_DRAWS = 3

# Weekly pools
WEEKLY_VERY_RARE_MIN = 5
WEEKLY_VERY_RARE_MAX = 10
WEEKLY_COMMON_MIN = 50
WEEKLY_VERY_RARE_CHANCE = 0.2
WEEKLY_RARE_CHANCE = 0.7


def weighted_pick(pool: List[Dict[str, Any]], rng=None) -> Optional[Dict[str, Any]]:
    """Draw one entry with likelihood proportional to its probability"""
    if not pool:
        return None
    rng = rng or random
    total_weight = sum(entry["probability"] for entry in pool)
    remaining = rng.random() * total_weight
    for entry in pool:
        remaining -= entry["probability"]
        if remaining <= 0:
            return entry
    return pool[-1]


def consolidate(picks: List[Optional[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Merge repeated draws into one entry per name, in first-drawn order"""
    by_name: Dict[str, Dict[str, Any]] = {}
    for pick in picks:
        if pick is None:
            continue
        existing = by_name.get(pick["name"])
        if existing:
            existing["count"] += 1
        else:
            by_name[pick["name"]] = {
                "name": pick["name"],
                "probability": pick["probability"],
                "count": 1
            }
    return list(by_name.values())


def _describe(selected: List[Dict[str, Any]]) -> List[str]:
    return [f"{a['name']} ({a['probability']}%) x{a['count']}" for a in selected]


def select_daily(manifest: List[Dict[str, Any]], rng=None) -> List[Dict[str, Any]]:
    """
    Select the daily challenge animals.

    Every returned animal has probability >= 40. An empty list means the
    region has no suitable animals.
    """
    rng = rng or random
    moderate = [a for a in manifest if DAILY_MODERATE_MIN <= a["probability"] < DAILY_EASY_MIN]
    easy = [a for a in manifest if a["probability"] >= DAILY_EASY_MIN]

    if not moderate and not easy:
        logger.warning("No animals with 40%+ probability for daily challenge")
        return []

    if moderate and rng.random() < DAILY_MODERATE_CHANCE:
        choice = rng.choice(moderate)
        selected = [{"name": choice["name"], "probability": choice["probability"], "count": 1}]
        logger.info(f"Daily challenge selected (moderate difficulty): {_describe(selected)}")
        return selected

    picks = [weighted_pick(easy, rng) for _ in range(DAILY_EASY_DRAWS)] if easy else []
    selected = consolidate(picks)
    logger.info(f"Daily challenge selected: {_describe(selected)}")
    return selected


def select_weekly(manifest: List[Dict[str, Any]], rng=None) -> List[Dict[str, Any]]:
    """
    Select the weekly challenge animals.

    Never returns an animal under 5%. A branch whose pools are empty
    contributes nothing; there is no fallback to another branch.
    """
    rng = rng or random
    very_rare = [
        a for a in manifest
        if WEEKLY_VERY_RARE_MIN <= a["probability"] <= WEEKLY_VERY_RARE_MAX
    ]
    rare = [
        a for a in manifest
        if WEEKLY_VERY_RARE_MAX < a["probability"] < WEEKLY_COMMON_MIN
    ]
    common = [a for a in manifest if a["probability"] >= WEEKLY_COMMON_MIN]

    if not very_rare and not rare and not common:
        logger.warning("No animals with 5%+ probability for weekly challenge")
        return []

    picks = []
    roll = rng.random()

    if very_rare and roll < WEEKLY_VERY_RARE_CHANCE:
        picks.append(rng.choice(very_rare))
        for _ in range(min(2, len(common))):
            picks.append(weighted_pick(common, rng))
    elif rare and roll < WEEKLY_RARE_CHANCE:
        rare_count = 2 if len(rare) > 1 and rng.random() < 0.5 else 1
        picks.extend(rng.sample(rare, rare_count))
        common_count = 3 + (1 if rng.random() < 0.5 else 0)
        for _ in range(common_count):
            picks.append(weighted_pick(common, rng))
    else:
        total_picks = 5 + int(rng.random() * 3)
        for _ in range(total_picks):
            picks.append(weighted_pick(common, rng))

    selected = consolidate(picks)
    logger.info(f"Weekly challenge selected (roll={roll:.3f}): {_describe(selected)}")
    return selected


def calculate_xp_potential(animals: List[Dict[str, Any]]) -> int:
    """
    XP for completing a challenge: sum of |probability - 100| * 2 per entry.

    Counts are ignored, so an animal drawn twice is worth the same as once.
    """
    return sum(abs(animal.get("probability", 0) - 100) * 2 for animal in animals)
