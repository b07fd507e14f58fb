"""
GeoQuest — Reward Ledger
========================

Pure functions over the immutable UserState. Every function returns a new
state; callers replace their reference and schedule persistence.

  grant()              — landmark unlock reward, idempotent per landmark id
  unlock_hint()        — spend points on a landmark hint, once per landmark
  redeem_promo_code()  — host code (unlocks the host apartment) / admin code
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from typing import Optional, Sequence

from geoquest.engine.landmarks import HOST_HOTEL_ID, find_landmark, replace_landmark
from geoquest.engine.models import Landmark, UserState, level_for

logger = logging.getLogger("geoquest.ledger")

# ── Configuration ──────────────────────────────────────────────────────────────
MIN_UNLOCK_POINTS = int(os.getenv("GEOQUEST_MIN_UNLOCK_POINTS", "10"))
HINT_COST         = int(os.getenv("GEOQUEST_HINT_COST", "50"))
HOST_PROMO_CODE   = "KUTAISI"
HOST_PROMO_POINTS = 300
ADMIN_PROMO_CODE  = os.getenv("GEOQUEST_ADMIN_CODE", "").strip().upper()


def _append_unique(items: tuple[str, ...], value: str) -> tuple[str, ...]:
    if value in items:
        return items
    return items + (value,)


def _with_points(state: UserState, points: int) -> UserState:
    return replace(state, points=points, level=level_for(points))


# ── Unlock rewards ─────────────────────────────────────────────────────────────
def grant(state: UserState, landmark: Landmark, points: int) -> UserState:
    """
    Apply the unlock reward for `landmark`.

    Points, level, inventory and unlocked_ids change together or not at all.
    A landmark already in unlocked_ids is a no-op (duplicate dispatch from a
    retried request or a double tap).
    """
    if landmark.id in state.unlocked_ids:
        logger.info(f"[LEDGER] {landmark.id} already unlocked — grant ignored")
        return state

    if points < MIN_UNLOCK_POINTS:
        logger.warning(
            f"[LEDGER] {landmark.id}: grant of {points} below minimum, "
            f"raised to {MIN_UNLOCK_POINTS}"
        )
        points = MIN_UNLOCK_POINTS

    new_points = state.points + points
    new_state = replace(
        _with_points(state, new_points),
        inventory    = _append_unique(state.inventory, landmark.reward_icon),
        unlocked_ids = _append_unique(state.unlocked_ids, landmark.id),
    )
    logger.info(
        f"[LEDGER] {landmark.id} unlocked: +{points} pts → {new_points} "
        f"(level {new_state.level})"
    )
    return new_state


# ── Hints ──────────────────────────────────────────────────────────────────────
def unlock_hint(state: UserState, landmark_id: str, cost: int = HINT_COST) -> UserState:
    if landmark_id in state.unlocked_hints:
        return state
    if state.points < cost:
        logger.info(f"[LEDGER] Hint for {landmark_id} refused: {state.points} < {cost}")
        return state
    return replace(
        _with_points(state, state.points - cost),
        unlocked_hints = state.unlocked_hints + (landmark_id,),
    )


# ── Promo codes ────────────────────────────────────────────────────────────────
def redeem_promo_code(
    state:     UserState,
    landmarks: Sequence[Landmark],
    code:      str,
    admin_code: Optional[str] = None,
) -> tuple[UserState, tuple[Landmark, ...], str]:
    """Returns (state, landmarks, message). Unknown codes change nothing."""
    landmarks  = tuple(landmarks)
    normalized = (code or "").strip().upper()
    admin_code = ADMIN_PROMO_CODE if admin_code is None else admin_code.strip().upper()

    if normalized == HOST_PROMO_CODE:
        hotel = find_landmark(landmarks, HOST_HOTEL_ID)
        if hotel is None:
            return state, landmarks, "Invalid Code."
        if hotel.is_unlocked or HOST_HOTEL_ID in state.unlocked_ids:
            return state, landmarks, "You already unlocked the hotel!"

        new_state = grant(state, hotel, HOST_PROMO_POINTS)
        logger.info(f"[LEDGER] Host code redeemed: +{HOST_PROMO_POINTS} pts")
        return new_state, replace_landmark(landmarks, hotel.unlocked()), \
            f"Hotel Unlocked! +{HOST_PROMO_POINTS} Points!"

    if admin_code and normalized == admin_code:
        logger.warning("[LEDGER] Admin mode enabled via promo code")
        return replace(state, is_admin=True), landmarks, "Admin mode enabled."

    return state, landmarks, "Invalid Code."
