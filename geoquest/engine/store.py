"""
GeoQuest — Application State Store
==================================

AppState is an immutable snapshot of everything the game mutates: player
state, landmark unlocks/photos, the latest device location and the last
FinalResult. Reducers are plain functions `(state, ...) -> state` so the
reconciliation and reward rules can be exercised without any UI.

Store owns the current snapshot, serialises dispatches behind a lock and
hands every new player state to the debounced persistence queue.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Optional, Sequence, Union

from geoquest.engine import reward_ledger
from geoquest.engine.landmarks import MAP_CENTER, find_landmark, replace_landmark, seed_landmarks
from geoquest.engine.models import (
    Coordinates,
    FinalResult,
    Landmark,
    RewardIntent,
    UserState,
    VerificationVerdict,
)
from geoquest.engine.persistence import RedisUserStateWriter, WriteCoalescingQueue
from geoquest.engine.reconciliation import LandmarkMatcher, reconcile
from geoquest.engine.request_builder import prepare_image

logger = logging.getLogger("geoquest.store")

MANUAL_CHECK_IN_POINTS = 50


class CaptureInProgressError(RuntimeError):
    """A verification request is already outstanding."""


@dataclass(frozen=True)
class AppState:
    user:            UserState
    landmarks:       tuple[Landmark, ...]
    device_location: Coordinates
    last_result:     Optional[FinalResult] = None
    latest_photo:    Optional[str]         = None

    @classmethod
    def initial(
        cls,
        user:            Optional[UserState]          = None,
        landmarks:       Optional[Sequence[Landmark]] = None,
        device_location: Coordinates                  = MAP_CENTER,
    ) -> "AppState":
        user      = user or UserState()
        landmarks = tuple(landmarks) if landmarks is not None else seed_landmarks()
        # Unlocks restored from storage are reflected on the registry copy
        landmarks = tuple(
            l.unlocked() if l.id in user.unlocked_ids and not l.is_unlocked else l
            for l in landmarks
        )
        return cls(user=user, landmarks=landmarks, device_location=device_location)


# ══════════════════════════════════════════════════════════════════════════════
#  Reducers
# ══════════════════════════════════════════════════════════════════════════════

def apply_verification_result(
    state:   AppState,
    verdict: VerificationVerdict,
    photo:   Optional[str]             = None,
    matcher: Optional[LandmarkMatcher] = None,
) -> AppState:
    """
    Reconcile `verdict` against the device location held in `state` at the
    moment this runs (not the location at capture time) and apply the
    resulting reward intent in one step.
    """
    result = reconcile(verdict, state.landmarks, state.device_location, photo=photo, matcher=matcher)
    state  = replace(state, last_result=result)

    if result.intent is None:
        return state

    landmark = find_landmark(state.landmarks, result.landmark_id)
    if landmark is None:
        return state

    if result.intent == RewardIntent.UNLOCK:
        user      = reward_ledger.grant(state.user, landmark, result.points_earned)
        landmarks = replace_landmark(state.landmarks, landmark.unlocked(photo))
        return replace(
            state,
            user         = user,
            landmarks    = landmarks,
            latest_photo = photo or state.latest_photo,
        )

    # REVISIT: refresh the photo, never the reward
    if photo:
        return replace(
            state,
            landmarks    = replace_landmark(state.landmarks, landmark.with_photo(photo)),
            latest_photo = photo,
        )
    return state


def update_device_location(state: AppState, location: Coordinates) -> AppState:
    return replace(state, device_location=location)


def unlock_hint(state: AppState, landmark_id: str, cost: int = reward_ledger.HINT_COST) -> AppState:
    if find_landmark(state.landmarks, landmark_id) is None:
        logger.warning(f"[STORE] Hint requested for unknown landmark '{landmark_id}'")
        return state
    return replace(state, user=reward_ledger.unlock_hint(state.user, landmark_id, cost))


def redeem_promo_code(state: AppState, code: str) -> tuple[AppState, str]:
    user, landmarks, message = reward_ledger.redeem_promo_code(state.user, state.landmarks, code)
    return replace(state, user=user, landmarks=landmarks), message


def manual_check_in(state: AppState, landmark_id: str) -> AppState:
    """Synthetic confirmed verdict for a landmark; still subject to the distance gate."""
    landmark = find_landmark(state.landmarks, landmark_id)
    if landmark is None:
        return state
    first_fact = landmark.facts[0] if landmark.facts else ""
    verdict = VerificationVerdict(
        location_confirmed = True,
        place_name         = landmark.name,
        story              = f"{landmark.description} {first_fact}".strip(),
        points_earned      = MANUAL_CHECK_IN_POINTS,
        next_quest_hint    = "Check your map for the next location!",
        reward_icon        = landmark.reward_icon,
    )
    return apply_verification_result(state, verdict)


# ══════════════════════════════════════════════════════════════════════════════
#  Store
# ══════════════════════════════════════════════════════════════════════════════

class Store:

    def __init__(
        self,
        state:       Optional[AppState]             = None,
        persistence: Optional[WriteCoalescingQueue] = None,
    ):
        self._state       = state or AppState.initial()
        self._persistence = persistence
        self._lock        = threading.RLock()
        self._verifying   = False

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def is_verifying(self) -> bool:
        return self._verifying

    def dispatch(self, reducer: Callable[..., AppState], *args, **kwargs) -> AppState:
        with self._lock:
            previous = self._state
            self._state = reducer(previous, *args, **kwargs)
            if self._persistence is not None and self._state.user != previous.user:
                self._persistence.schedule(self._state.user.to_dict())
            return self._state

    def flush(self) -> bool:
        """Write any pending player snapshot now (e.g. on shutdown)."""
        if self._persistence is None:
            return False
        return self._persistence.flush()

    # ── Actions ───────────────────────────────────────────────────────────────
    def update_location(self, location: Coordinates) -> AppState:
        return self.dispatch(update_device_location, location)

    def submit_verdict(self, verdict: VerificationVerdict, photo: Optional[str] = None) -> FinalResult:
        return self.dispatch(apply_verification_result, verdict, photo).last_result

    def unlock_hint(self, landmark_id: str) -> AppState:
        return self.dispatch(unlock_hint, landmark_id)

    def redeem_code(self, code: str) -> str:
        messages: list[str] = []

        def _redeem(state: AppState) -> AppState:
            new_state, message = redeem_promo_code(state, code)
            messages.append(message)
            return new_state

        self.dispatch(_redeem)
        return messages[0]

    def manual_check_in(self, landmark_id: str) -> Optional[FinalResult]:
        return self.dispatch(manual_check_in, landmark_id).last_result

    def verify_capture(self, client, image: Union[bytes, str]) -> FinalResult:
        """
        Full capture flow: downscale the photo to a ≤1024px JPEG, identify it
        through `client` using the current device location, then reconcile
        against whatever location is current when the verdict arrives.

        Raises VerificationInputError for an unreadable photo.
        """
        with self._lock:
            if self._verifying:
                raise CaptureInProgressError("A verification request is already in flight")
            self._verifying = True
            location = self._state.device_location
        try:
            photo   = prepare_image(image)
            verdict = client.identify(photo, location)
        finally:
            with self._lock:
                self._verifying = False
        return self.submit_verdict(verdict, photo=photo)


def open_store(user_id: str, redis_client=None, delay: Optional[float] = None) -> Store:
    """Hydrate a Store from Redis and wire its debounced writer."""
    writer   = RedisUserStateWriter(user_id, client=redis_client)
    snapshot = writer.load()
    user     = UserState.from_dict(snapshot) if snapshot else UserState()
    queue    = WriteCoalescingQueue(writer) if delay is None else WriteCoalescingQueue(writer, delay=delay)
    logger.info(f"[STORE] Session for {user_id}: {user.points} pts, {len(user.unlocked_ids)} unlocked")
    return Store(AppState.initial(user=user), persistence=queue)
