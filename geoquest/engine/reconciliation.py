"""
GeoQuest — Reconciliation Engine
================================

Turns a raw VerificationVerdict into a FinalResult:

  1. Unconfirmed verdicts pass through untouched.
  2. The free-text place name is matched against the landmark registry
     (LandmarkMatcher — substring heuristic by default).
  3. Unmatched names pass through with no landmark attached and no reward
     intent (nothing in the registry can be unlocked by them).
  4. Matched landmarks are distance-gated against the device location.
     Anything beyond MAX_DISTANCE_METERS is downgraded to "Too Far Away!"
     regardless of what the vision model claimed.
  5. Within the gate the result carries an UNLOCK intent for locked
     landmarks and a REVISIT intent (photo refresh only) otherwise.

reconcile() never raises.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Optional, Sequence

from geoquest.engine.models import (
    Coordinates,
    FinalResult,
    Landmark,
    RewardIntent,
    VerificationVerdict,
)

logger = logging.getLogger("geoquest.reconcile")

# ── Configuration ──────────────────────────────────────────────────────────────
MAX_DISTANCE_METERS = float(os.getenv("GEOQUEST_MAX_DISTANCE_M", "800"))

TOO_FAR_PLACE_NAME = "Too Far Away!"
TOO_FAR_HINT       = "Move towards the location on the map."


# ══════════════════════════════════════════════════════════════════════════════
#  Landmark matching
# ══════════════════════════════════════════════════════════════════════════════

class LandmarkMatcher(ABC):
    """Maps a verdict's place name onto a registry entry."""

    @abstractmethod
    def match(self, place_name: str, landmarks: Sequence[Landmark]) -> Optional[Landmark]:
        ...


class SubstringLandmarkMatcher(LandmarkMatcher):
    """
    Case-insensitive bidirectional containment: "Bagrati Cathedral, Kutaisi"
    matches "Bagrati Cathedral" and "Gelati" matches "Gelati Monastery".
    First hit in registry order wins.
    """

    def match(self, place_name: str, landmarks: Sequence[Landmark]) -> Optional[Landmark]:
        needle = (place_name or "").strip().lower()
        if not needle:
            return None
        for landmark in landmarks:
            name = landmark.name.lower()
            if name in needle or needle in name:
                return landmark
        return None


DEFAULT_MATCHER = SubstringLandmarkMatcher()


# ══════════════════════════════════════════════════════════════════════════════
#  Reconciliation
# ══════════════════════════════════════════════════════════════════════════════

def too_far_story(landmark_name: str, distance_m: float) -> str:
    return f"You found {landmark_name}, but you are {int(round(distance_m))}m away. Get closer!"


def reconcile(
    verdict:         VerificationVerdict,
    known_landmarks: Sequence[Landmark],
    device_location: Coordinates,
    photo:           Optional[str]             = None,
    matcher:         Optional[LandmarkMatcher] = None,
    max_distance_m:  Optional[float]           = None,
) -> FinalResult:
    result = FinalResult.from_verdict(verdict)

    if not verdict.location_confirmed:
        logger.info(f"[RECONCILE] Unconfirmed verdict '{verdict.place_name}' — pass-through")
        return result

    matcher = matcher or DEFAULT_MATCHER
    gate    = MAX_DISTANCE_METERS if max_distance_m is None else max_distance_m

    landmark = matcher.match(verdict.place_name, known_landmarks)
    if landmark is None:
        logger.warning(
            f"[RECONCILE] '{verdict.place_name}' matches no registry landmark — "
            f"accepted without reward"
        )
        return result

    distance_m = device_location.distance_to(landmark.position)
    result = replace(
        result,
        reward_icon = landmark.reward_icon,
        landmark_id = landmark.id,
        distance_m  = distance_m,
    )

    # Compare on the raw distance, round only for display
    if distance_m > gate:
        logger.warning(
            f"[RECONCILE] {landmark.id}: device is {distance_m:.1f}m away "
            f"(gate {gate:.0f}m) — downgraded to rejection"
        )
        return replace(
            result,
            location_confirmed = False,
            place_name         = TOO_FAR_PLACE_NAME,
            story              = too_far_story(landmark.name, distance_m),
            points_earned      = 0,
            next_quest_hint    = TOO_FAR_HINT,
        )

    intent = RewardIntent.REVISIT if landmark.is_unlocked else RewardIntent.UNLOCK
    logger.info(
        f"[RECONCILE] {landmark.id}: within gate ({distance_m:.1f}m) → {intent.value}"
    )
    return replace(result, intent=intent, photo=photo)
