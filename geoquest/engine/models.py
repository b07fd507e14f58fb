"""
GeoQuest — Core Data Model
==========================

Value objects shared by the verification pipeline:

  Coordinates          — lat/lng pair with haversine distance in meters
  Landmark             — registry entry (position, rewards, unlock state)
  VerificationVerdict  — strict schema of the inference boundary response
  FinalResult          — verdict after reconciliation, the only object the
                         reward ledger and the UI act upon
  UserState            — immutable player state (points, unlocks, inventory)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

EARTH_RADIUS_M = 6_371_000.0
STARTING_POINTS = 100
POINTS_PER_LEVEL = 100


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------
class LandmarkCategory(str, Enum):
    QUEST  = "quest"
    DINING = "dining"
    HOTEL  = "hotel"


class RewardIntent(str, Enum):
    UNLOCK  = "unlock"     # first valid visit, reward must be granted
    REVISIT = "revisit"    # already unlocked, refresh photo only


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def distance_to(self, other: "Coordinates") -> float:
        """Haversine formula on a spherical Earth — distance in meters."""
        lat1, lng1 = math.radians(self.lat),  math.radians(self.lng)
        lat2, lng2 = math.radians(other.lat), math.radians(other.lng)
        dlat = lat2 - lat1
        dlng = lng2 - lng1
        a = (
            math.sin(dlat / 2) ** 2
            + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
        )
        return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}


# ---------------------------------------------------------------------------
# Landmark registry entry
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Landmark:
    id:          str
    name:        str
    category:    LandmarkCategory
    position:    Coordinates
    reward_icon: str
    description: str            = ""
    riddle:      str            = ""
    hints:       tuple[str, ...] = ()
    facts:       tuple[str, ...] = ()
    is_unlocked: bool           = False
    user_photo:  Optional[str]  = None

    def unlocked(self, photo: Optional[str] = None) -> "Landmark":
        return replace(self, is_unlocked=True, user_photo=photo or self.user_photo)

    def with_photo(self, photo: Optional[str]) -> "Landmark":
        if not photo:
            return self
        return replace(self, user_photo=photo)


# ---------------------------------------------------------------------------
# Inference boundary schema
# ---------------------------------------------------------------------------
class VerificationVerdict(BaseModel):
    """Raw vision verdict. Unknown keys are dropped; missing or wrongly typed keys rejected."""

    model_config = ConfigDict(extra="ignore", frozen=True, strict=True)

    location_confirmed: bool
    place_name:         str
    story:              str
    points_earned:      int = Field(..., ge=0)
    next_quest_hint:    str
    reward_icon:        Optional[str] = None


CONNECTION_ERROR_VERDICT = VerificationVerdict(
    location_confirmed = False,
    place_name         = "Connection Error",
    story              = "Could not connect to AI. Please check your internet.",
    points_earned      = 0,
    next_quest_hint    = "Try again later.",
)


@dataclass(frozen=True)
class FinalResult:
    location_confirmed: bool
    place_name:         str
    story:              str
    points_earned:      int
    next_quest_hint:    str
    reward_icon:        Optional[str]          = None
    landmark_id:        Optional[str]          = None
    distance_m:         Optional[float]        = None
    intent:             Optional[RewardIntent] = None
    photo:              Optional[str]          = None

    @classmethod
    def from_verdict(cls, verdict: VerificationVerdict) -> "FinalResult":
        return cls(
            location_confirmed = verdict.location_confirmed,
            place_name         = verdict.place_name,
            story              = verdict.story,
            points_earned      = verdict.points_earned,
            next_quest_hint    = verdict.next_quest_hint,
            reward_icon        = verdict.reward_icon,
        )

    @property
    def distance_display_m(self) -> Optional[int]:
        if self.distance_m is None:
            return None
        return int(round(self.distance_m))

    def to_dict(self) -> dict:
        return {
            "location_confirmed": self.location_confirmed,
            "place_name":         self.place_name,
            "story":              self.story,
            "points_earned":      self.points_earned,
            "next_quest_hint":    self.next_quest_hint,
            "reward_icon":        self.reward_icon,
            "landmark_id":        self.landmark_id,
            "distance_m":         self.distance_display_m,
            "intent":             self.intent.value if self.intent else None,
        }


# ---------------------------------------------------------------------------
# Player state
# ---------------------------------------------------------------------------
def level_for(points: int) -> int:
    return max(0, points) // POINTS_PER_LEVEL + 1


@dataclass(frozen=True)
class UserState:
    points:           int             = STARTING_POINTS
    level:            int             = level_for(STARTING_POINTS)
    unlocked_ids:     tuple[str, ...] = ()
    inventory:        tuple[str, ...] = ()
    redeemed_coupons: tuple[str, ...] = ()
    unlocked_hints:   tuple[str, ...] = ()
    is_admin:         bool            = False

    def to_dict(self) -> dict:
        return {
            "points":          self.points,
            "level":           self.level,
            "unlockedIds":     list(self.unlocked_ids),
            "inventory":       list(self.inventory),
            "redeemedCoupons": list(self.redeemed_coupons),
            "unlockedHints":   list(self.unlocked_hints),
            "isAdmin":         self.is_admin,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserState":
        points = int(data.get("points", STARTING_POINTS))
        return cls(
            points           = points,
            level            = level_for(points),
            unlocked_ids     = tuple(data.get("unlockedIds", ())),
            inventory        = tuple(data.get("inventory", ())),
            redeemed_coupons = tuple(data.get("redeemedCoupons", ())),
            unlocked_hints   = tuple(data.get("unlockedHints", ())),
            is_admin         = bool(data.get("isAdmin", False)),
        )
