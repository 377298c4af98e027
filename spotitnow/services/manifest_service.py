"""
Manifest Service - builds a region's animal-sighting probability manifest

The LLM is asked once per region for a 0-100 sighting probability per
catalog animal. Its reply is unreliable free text, so it goes through a
parse step (code-fence stripping, array extraction, bounded repairs) and a
validation step (catalog matching, clamping, back-filling) before it is
stored.
"""
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session

from spotitnow.exceptions import ManifestGenerationError, ManifestParseError
from spotitnow.services.catalog_service import catalog_service
from spotitnow.services.llm_service import llm_service

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are an expert wildlife biologist specializing in animal observation probabilities. "
    "You answer with raw JSON only."
)

_CODE_FENCE_RE = re.compile(r"```(?:json|JSON)?")

# (pattern, replacement) pairs applied in order when the first parse fails
_REPAIRS = [
    (re.compile(r",\s*}"), "}"),
    (re.compile(r",\s*]"), "]"),
    (re.compile(r":\s*undefined"), ": null"),
    (re.compile(r"'"), '"'),
]


def build_zoologist_prompt(location: str, animal_names: List[str]) -> str:
    """Prompt asking for one calibrated daily sighting probability per animal"""
    return f"""I need you to estimate realistic daily sighting probabilities for a list of animals in a specific location.

THE QUESTION FOR EACH ANIMAL: "If an average person spent 1-2 hours walking around {location} today (parks, neighborhoods, trails), what is the percent chance they would spot this animal at least once?"

Location: {location}
Animals to evaluate: {', '.join(animal_names)}

Be conservative and realistic with probabilities:
- 0%: Impossible in this biome (Polar Bear in Texas, Penguin in suburban areas)
- 1-5%: Very rare - might see once per year if lucky (foxes, owls, deer in suburban areas)
- 6-15%: Uncommon - might see a few times per month (hawks, woodpeckers, rabbits)
- 16-35%: Fairly common - expect to see weekly (blue jays, doves, chipmunks)
- 36-60%: Common - likely to see on most outings (cardinals, robins, crows, squirrels)
- 61-80%: Very common - almost guaranteed (house sparrows, pigeons in urban areas)
- 81-100%: Extremely common - impossible to miss (only for the most abundant species)

IMPORTANT: Most wild animals should be BELOW 30%. Even "common" backyard birds are only seen on some days, not every day. Urban pigeons might be 60-80%, but most songbirds are 20-40% at best.

Return ONLY a valid JSON array with an integer probability from 0 to 100 for each animal. No markdown, no explanation.
Format: [{{"name": "Animal Name", "probability": 25}}, ...]

Use the EXACT animal names provided. Every animal in the list must appear in your response."""


def _strip_code_fences(text: str) -> str:
    return _CODE_FENCE_RE.sub("", text).strip()


def _first_array(text: str) -> Optional[List[Any]]:
    """Decode the first JSON array found anywhere in ``text``"""
    decoder = json.JSONDecoder()
    start = text.find("[")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except ValueError:
            value = None
        if isinstance(value, list):
            return value
        start = text.find("[", start + 1)
    return None


def parse_manifest_response(text: str) -> List[Any]:
    """
    Parse the oracle reply into a list.

    Raises:
        ManifestParseError: no array could be recovered
    """
    if not text or not text.strip():
        raise ManifestParseError("Empty response from LLM")

    cleaned = _strip_code_fences(text)

    # Widest bracketed span first; tolerates prose before and after the array
    first, last = cleaned.find("["), cleaned.rfind("]")
    if first != -1 and last > first:
        cleaned = cleaned[first:last + 1]

    try:
        parsed = json.loads(cleaned)
    except ValueError as e:
        logger.warning(f"Initial manifest parse failed, attempting repair: {e}; sample={cleaned[:200]!r}")
        repaired = cleaned
        for pattern, replacement in _REPAIRS:
            repaired = pattern.sub(replacement, repaired)
        try:
            parsed = json.loads(repaired)
        except ValueError:
            parsed = _first_array(repaired)
            if parsed is None:
                raise ManifestParseError(
                    "Failed to parse manifest even after repair",
                    {"sample": cleaned[:200]}
                )

    if not isinstance(parsed, list):
        raise ManifestParseError("Invalid response: expected an array")

    return parsed


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def validate_manifest(parsed: List[Any], catalog_names: List[str]) -> List[Dict[str, Any]]:
    """
    Reconcile parsed oracle entries with the catalog.

    Unknown names and malformed entries are dropped, probabilities are
    rounded and clamped to [0, 100], and catalog animals the oracle skipped
    are appended with probability 0. The result holds each catalog name
    exactly once.
    """
    exact_names = {name.lower(): name for name in catalog_names}
    seen = set()
    manifest = []

    for item in parsed:
        if not isinstance(item, dict):
            logger.warning(f"Skipping invalid manifest entry: {item!r}")
            continue
        name = item.get("name")
        probability = item.get("probability")
        if (
            not isinstance(name, str)
            or not name.strip()
            or isinstance(probability, bool)
            or not isinstance(probability, (int, float))
            or math.isnan(probability)
        ):
            logger.warning(f"Skipping invalid manifest entry: {item!r}")
            continue

        key = name.strip().lower()
        if key not in exact_names:
            logger.warning(f"Unknown animal in manifest: {name!r}")
            continue
        if key in seen:
            logger.warning(f"Duplicate animal in manifest: {name!r}")
            continue

        seen.add(key)
        manifest.append({
            "name": exact_names[key],
            "probability": max(0, min(100, _round_half_up(probability))),
        })

    for name in catalog_names:
        if name.lower() not in seen:
            seen.add(name.lower())
            manifest.append({"name": name, "probability": 0})

    return manifest


def summarize_distribution(manifest: List[Dict[str, Any]]) -> Dict[str, int]:
    """Bucket counts used for logging and the admin listing"""
    buckets = {
        "zero": 0,
        "rare": 0,
        "uncommon": 0,
        "fairly_common": 0,
        "common": 0,
        "very_common": 0,
        "extremely_common": 0,
    }
    for entry in manifest:
        p = entry["probability"]
        if p == 0:
            buckets["zero"] += 1
        elif p <= 5:
            buckets["rare"] += 1
        elif p <= 15:
            buckets["uncommon"] += 1
        elif p <= 35:
            buckets["fairly_common"] += 1
        elif p <= 60:
            buckets["common"] += 1
        elif p <= 80:
            buckets["very_common"] += 1
        else:
            buckets["extremely_common"] += 1
    return buckets


class ManifestService:
    """Generates probability manifests through the LLM oracle"""

    def __init__(self, llm=None, catalog=None):
        self.llm = llm or llm_service
        self.catalog = catalog or catalog_service

    async def generate_manifest(
        self,
        db: Session,
        location: str
    ) -> Tuple[List[Dict[str, Any]], List[Any]]:
        """
        Ask the oracle for a full-catalog manifest for ``location``.

        Returns:
            (manifest, parsed raw reply)

        Raises:
            ManifestGenerationError: empty catalog or oracle failure
            ManifestParseError: reply could not be parsed
        """
        animal_names = self.catalog.list_catalog_names(db)
        if not animal_names:
            raise ManifestGenerationError(
                "No animals found in catalog. Add animals before generating challenges."
            )

        logger.info(f"Requesting probability manifest for {location} ({len(animal_names)} animals)")

        result = await self.llm.generate(
            prompt=build_zoologist_prompt(location, animal_names),
            system_prompt=SYSTEM_PROMPT
        )
        if not result.get("success"):
            raise ManifestGenerationError(
                f"LLM request failed: {result.get('error', 'unknown error')}",
                {"provider": result.get("provider")}
            )

        text = result.get("generated_text", "")
        logger.info(f"LLM manifest response received ({len(text)} chars)")

        parsed = parse_manifest_response(text)
        manifest = validate_manifest(parsed, animal_names)

        top = sorted(
            (m for m in manifest if m["probability"] > 0),
            key=lambda m: m["probability"],
            reverse=True
        )[:15]
        sample = ["%s (%d%%)" % (m["name"], m["probability"]) for m in top]
        logger.info(
            f"Probability manifest generated for {location}: size={len(manifest)} "
            f"distribution={summarize_distribution(manifest)} top={sample}"
        )

        return manifest, parsed


# Singleton instance
manifest_service = ManifestService()
