"""
GeoQuest — Application State Store Unit Tests
pytest test suite

Coverage:
  - Scenario flows: unlock, too far, unmatched place, revisit
  - Reconciliation reads the latest device location in state
  - Duplicate verdicts never re-grant
  - Hints, promo codes and manual check-in through the store
  - Persistence scheduled only when the player state changes
  - Capture re-entrancy guard
  - Capture sends a downscaled JPEG and stores the same photo
"""

import base64
import io
import json
import os
import sys
from unittest.mock import MagicMock

import pytest
from PIL import Image

# ── Path setup ────────────────────────────────────────────────────────────────
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from geoquest.engine.landmarks import HOST_HOTEL_ID, find_landmark, seed_landmarks
from geoquest.engine.models import RewardIntent, UserState, VerificationVerdict
from geoquest.engine.request_builder import VerificationInputError
from geoquest.engine.store import (
    MANUAL_CHECK_IN_POINTS,
    AppState,
    CaptureInProgressError,
    Store,
    apply_verification_result,
    open_store,
    update_device_location,
)

LANDMARKS = seed_landmarks()
BAGRATI   = find_landmark(LANDMARKS, "bagrati")
GELATI    = find_landmark(LANDMARKS, "gelati")


def _verdict(place_name="Bagrati Cathedral", confirmed=True, points=50):
    return VerificationVerdict(
        location_confirmed = confirmed,
        place_name         = place_name,
        story              = "A story.",
        points_earned      = points,
        next_quest_hint    = "Next hint.",
    )


def _state_at(location):
    return AppState.initial(device_location=location)


def _png_b64(width=64, height=48) -> str:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 80, 20)).save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


def _sent_image(client) -> Image.Image:
    return Image.open(io.BytesIO(base64.b64decode(client.identify.call_args.args[0])))


# ── Reducers ──────────────────────────────────────────────────────────────────

class TestApplyVerificationResult:

    def test_successful_unlock(self):
        state = apply_verification_result(_state_at(BAGRATI.position), _verdict(), photo="PHOTO")
        landmark = find_landmark(state.landmarks, "bagrati")

        assert state.last_result.intent == RewardIntent.UNLOCK
        assert landmark.is_unlocked is True
        assert landmark.user_photo == "PHOTO"
        assert state.user.points == 150
        assert "bagrati" in state.user.unlocked_ids
        assert BAGRATI.reward_icon in state.user.inventory
        assert state.latest_photo == "PHOTO"

    def test_too_far_changes_nothing(self):
        before = _state_at(GELATI.position)
        after  = apply_verification_result(before, _verdict(points=80), photo="PHOTO")
        assert after.last_result.place_name == "Too Far Away!"
        assert after.user == before.user
        assert after.landmarks == before.landmarks

    def test_unmatched_place_changes_nothing(self):
        before = _state_at(BAGRATI.position)
        after  = apply_verification_result(before, _verdict("Some Random Cafe", points=30))
        assert after.last_result.location_confirmed is True
        assert after.last_result.points_earned == 30
        assert after.user == before.user
        assert after.landmarks == before.landmarks

    def test_revisit_refreshes_photo_only(self):
        state = apply_verification_result(_state_at(BAGRATI.position), _verdict(), photo="OLD")
        user_after_unlock = state.user

        state = apply_verification_result(state, _verdict(), photo="NEW")
        assert state.last_result.intent == RewardIntent.REVISIT
        assert state.user == user_after_unlock
        assert find_landmark(state.landmarks, "bagrati").user_photo == "NEW"

    def test_duplicate_verdicts_grant_once(self):
        state = _state_at(BAGRATI.position)
        for _ in range(3):
            state = apply_verification_result(state, _verdict())
        assert state.user.points == 150
        assert state.user.unlocked_ids.count("bagrati") == 1

    def test_uses_latest_device_location(self):
        # captured near Gelati, user walked to Bagrati before the verdict arrived
        state = _state_at(GELATI.position)
        state = update_device_location(state, BAGRATI.position)
        state = apply_verification_result(state, _verdict())
        assert state.last_result.intent == RewardIntent.UNLOCK

    def test_restored_unlocks_reflected_on_registry(self):
        state = AppState.initial(user=UserState(unlocked_ids=("gelati",)))
        assert find_landmark(state.landmarks, "gelati").is_unlocked is True
        assert find_landmark(state.landmarks, "bagrati").is_unlocked is False


# ── Store ─────────────────────────────────────────────────────────────────────

class TestStore:

    def setup_method(self):
        self.persistence = MagicMock()
        self.store = Store(_state_at(BAGRATI.position), persistence=self.persistence)

    def test_submit_verdict_schedules_snapshot(self):
        result = self.store.submit_verdict(_verdict(), photo="PHOTO")
        assert result.intent == RewardIntent.UNLOCK
        self.persistence.schedule.assert_called_once_with(self.store.state.user.to_dict())

    def test_location_update_not_persisted(self):
        self.store.update_location(GELATI.position)
        self.persistence.schedule.assert_not_called()

    def test_rejection_not_persisted(self):
        self.store.update_location(GELATI.position)
        self.store.submit_verdict(_verdict())
        self.persistence.schedule.assert_not_called()

    def test_unlock_hint(self):
        self.store.unlock_hint("gelati")
        assert "gelati" in self.store.state.user.unlocked_hints
        assert self.persistence.schedule.call_count == 1

    def test_unlock_hint_unknown_landmark(self):
        before = self.store.state
        self.store.unlock_hint("atlantis")
        assert self.store.state == before

    def test_redeem_host_code(self):
        message = self.store.redeem_code("KUTAISI")
        assert "Hotel Unlocked" in message
        hotel = find_landmark(self.store.state.landmarks, HOST_HOTEL_ID)
        assert hotel.is_unlocked is True
        assert hotel.reward_icon in self.store.state.user.inventory
        assert self.store.redeem_code("KUTAISI") == "You already unlocked the hotel!"

    def test_manual_check_in_within_gate(self):
        result = self.store.manual_check_in("bagrati")
        assert result.intent == RewardIntent.UNLOCK
        assert result.points_earned == MANUAL_CHECK_IN_POINTS
        assert self.store.state.user.points == 100 + MANUAL_CHECK_IN_POINTS

    def test_manual_check_in_still_gated(self):
        result = self.store.manual_check_in("gelati")
        assert result.location_confirmed is False
        assert "gelati" not in self.store.state.user.unlocked_ids

    def test_verify_capture_flow(self):
        client = MagicMock()
        client.identify.return_value = _verdict()
        result = self.store.verify_capture(client, _png_b64())

        client.identify.assert_called_once()
        assert client.identify.call_args.args[1] == BAGRATI.position
        assert result.intent == RewardIntent.UNLOCK
        assert self.store.is_verifying is False

    def test_verify_capture_sends_downscaled_jpeg(self):
        client = MagicMock()
        client.identify.return_value = _verdict()
        self.store.verify_capture(client, _png_b64(3000, 1500))

        sent = _sent_image(client)
        assert sent.format == "JPEG"
        assert max(sent.size) <= 1024
        assert sent.size == (1024, 512)
        # the stored photo is the prepared one
        sent_b64 = client.identify.call_args.args[0]
        assert find_landmark(self.store.state.landmarks, "bagrati").user_photo == sent_b64
        assert self.store.state.latest_photo == sent_b64

    def test_verify_capture_accepts_raw_bytes(self):
        client = MagicMock()
        client.identify.return_value = _verdict()
        self.store.verify_capture(client, base64.b64decode(_png_b64(2048, 2048)))
        assert _sent_image(client).size == (1024, 1024)

    def test_verify_capture_unreadable_photo(self):
        client = MagicMock()
        with pytest.raises(VerificationInputError):
            self.store.verify_capture(client, base64.b64encode(b"not an image").decode("ascii"))
        client.identify.assert_not_called()
        assert self.store.is_verifying is False

    def test_verify_capture_rejects_reentry(self):
        client = MagicMock()

        def reenter(image, location):
            with pytest.raises(CaptureInProgressError):
                self.store.verify_capture(client, _png_b64())
            return _verdict()

        client.identify.side_effect = reenter
        self.store.verify_capture(client, _png_b64())
        assert client.identify.call_count == 1

    def test_verify_flag_cleared_on_error(self):
        client = MagicMock()
        client.identify.side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            self.store.verify_capture(client, _png_b64())
        assert self.store.is_verifying is False


# ── open_store() ──────────────────────────────────────────────────────────────

class FakeRedis:

    def __init__(self, data=None):
        self.data = dict(data or {})

    def set(self, key, value):
        self.data[key] = value

    def get(self, key):
        return self.data.get(key)


class TestOpenStore:

    def test_new_user(self):
        store = open_store("u1", redis_client=FakeRedis())
        assert store.state.user == UserState()

    def test_hydrates_and_persists(self):
        redis_client = FakeRedis({
            "geoquest:user:u2": json.dumps({"points": 240, "unlockedIds": ["gelati"]}),
        })
        store = open_store("u2", redis_client=redis_client)
        assert store.state.user.points == 240
        assert find_landmark(store.state.landmarks, "gelati").is_unlocked is True

        store.update_location(BAGRATI.position)
        store.submit_verdict(_verdict())
        assert store.flush() is True

        saved = json.loads(redis_client.get("geoquest:user:u2"))
        assert saved["points"] == 290
        assert saved["unlockedIds"] == ["gelati", "bagrati"]
