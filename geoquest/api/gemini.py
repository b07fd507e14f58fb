"""
GeoQuest — Gemini Inference Boundary
====================================

Server-side prompt construction for the three model calls the API exposes.
The client never sends instructions, only the photo, coordinates or text.

  identify_landmark()  — vision model, JSON-only response with a fixed schema
  synthesize_speech()  — TTS model, base64 raw PCM16 24 kHz mono
  chat_as_legend()     — short in-character lore replies
"""

from __future__ import annotations

import base64
import json
import logging
import os
from typing import Optional, Sequence

from google import genai
from google.genai import types
from pydantic import ValidationError

from geoquest.engine.landmarks import quest_landmarks, seed_landmarks
from geoquest.engine.models import VerificationVerdict

logger = logging.getLogger("geoquest.gemini")

# ── Configuration ──────────────────────────────────────────────────────────────
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
VISION_MODEL   = os.getenv("GEOQUEST_VISION_MODEL", "gemini-3-flash-preview")
CHAT_MODEL     = os.getenv("GEOQUEST_CHAT_MODEL", VISION_MODEL)
TTS_MODEL      = os.getenv("GEOQUEST_TTS_MODEL", "gemini-2.5-flash-preview-tts")
TTS_VOICE      = os.getenv("GEOQUEST_TTS_VOICE", "Kore")


class InferenceError(RuntimeError):
    """Model call failed or returned something unusable."""


VERDICT_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "location_confirmed": types.Schema(type=types.Type.BOOLEAN),
        "place_name":         types.Schema(type=types.Type.STRING),
        "story":              types.Schema(type=types.Type.STRING),
        "points_earned":      types.Schema(type=types.Type.INTEGER),
        "next_quest_hint":    types.Schema(type=types.Type.STRING),
    },
    required=[
        "location_confirmed",
        "place_name",
        "story",
        "points_earned",
        "next_quest_hint",
    ],
)


def build_identify_prompt(lat: float, lng: float, landmark_names: Sequence[str] = ()) -> str:
    known = ""
    if landmark_names:
        known = "Known landmarks: " + ", ".join(landmark_names) + ".\n"
    return (
        'Role: You are "GeoQuest AI", a strict judge of locations in Kutaisi, Georgia.\n'
        f"User GPS: Lat {lat}, Lng {lng}.\n"
        f"{known}"
        "Task: Identify if the image matches a known landmark at these coordinates. "
        "Use the landmark's exact name as place_name.\n"
        "Output: JSON only."
    )


def build_tts_prompt(text: str, kind: str, phrase: Optional[str] = None) -> str:
    if kind == "phrase":
        return f'You are a native Georgian speaker. Pronounce this clearly: "{phrase or text}"'
    return f'Read this tour guide description enthusiastically: "{text}"'


def build_chat_prompt(legend_name: str, legend_bio: str, history: Sequence[dict], message: str) -> str:
    instruction = (
        f"You are acting as {legend_name}. Bio: {legend_bio}.\n"
        "Keep responses strictly under 3 sentences. Be warm and archaic.\n"
        "Do not reveal you are an AI."
    )
    context = "\n".join(
        f"{'Traveler' if turn.get('role') == 'user' else legend_name}: {turn.get('text', '')}"
        for turn in history
    )
    return f"{instruction}\n\nHistory:\n{context}\n\nTraveler: {message}\n{legend_name}:"


class GeminiOracle:
    """
    Thin wrapper over `genai.Client`. The client is created on first use so
    the API can boot (and be tested) without a key.
    """

    def __init__(self, client: Optional[genai.Client] = None, api_key: Optional[str] = GEMINI_API_KEY):
        self._client  = client
        self._api_key = api_key
        self._landmark_names = tuple(l.name for l in quest_landmarks(seed_landmarks()))

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise InferenceError("GEMINI_API_KEY is not configured")
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    # ── Vision ────────────────────────────────────────────────────────────────
    def identify_landmark(self, image_b64: str, lat: float, lng: float) -> VerificationVerdict:
        prompt = build_identify_prompt(lat, lng, self._landmark_names)
        try:
            response = self.client.models.generate_content(
                model=VISION_MODEL,
                contents=[
                    types.Content(
                        role="user",
                        parts=[
                            types.Part(
                                inline_data=types.Blob(
                                    mime_type="image/jpeg",
                                    data=base64.b64decode(image_b64),
                                )
                            ),
                            types.Part(text=prompt),
                        ],
                    )
                ],
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=VERDICT_SCHEMA,
                ),
            )
        except InferenceError:
            raise
        except Exception as e:
            raise InferenceError(f"Vision call failed: {e}") from e

        try:
            verdict = VerificationVerdict.model_validate(json.loads(response.text or ""))
        except (json.JSONDecodeError, ValidationError) as e:
            raise InferenceError(f"Vision model returned an invalid verdict: {e}") from e

        logger.info(
            f"[GEMINI] Identify: confirmed={verdict.location_confirmed} "
            f"place='{verdict.place_name}' points={verdict.points_earned}"
        )
        return verdict

    # ── Speech ────────────────────────────────────────────────────────────────
    def synthesize_speech(self, text: str, kind: str = "guide", phrase: Optional[str] = None) -> str:
        """Returns base64 raw PCM16-LE (24 kHz mono) as produced by the TTS model."""
        try:
            response = self.client.models.generate_content(
                model=TTS_MODEL,
                contents=[
                    types.Content(
                        role="user",
                        parts=[types.Part(text=build_tts_prompt(text, kind, phrase))],
                    )
                ],
                config=types.GenerateContentConfig(
                    response_modalities=["AUDIO"],
                    speech_config=types.SpeechConfig(
                        voice_config=types.VoiceConfig(
                            prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=TTS_VOICE)
                        )
                    ),
                ),
            )
        except InferenceError:
            raise
        except Exception as e:
            raise InferenceError(f"TTS call failed: {e}") from e

        audio = None
        if response.candidates and response.candidates[0].content and response.candidates[0].content.parts:
            for part in response.candidates[0].content.parts:
                if part.inline_data and part.inline_data.data:
                    audio = part.inline_data.data
                    break
        if not audio:
            raise InferenceError("TTS model returned no audio")

        if isinstance(audio, (bytes, bytearray)):
            audio = base64.b64encode(audio).decode("ascii")
        logger.info(f"[GEMINI] TTS ({kind}): {len(audio) * 3 // 4 // 1024}KB")
        return audio

    # ── Lore chat ─────────────────────────────────────────────────────────────
    def chat_as_legend(self, legend_name: str, legend_bio: str, history: Sequence[dict], message: str) -> str:
        prompt = build_chat_prompt(legend_name, legend_bio, history, message)
        try:
            response = self.client.models.generate_content(
                model=CHAT_MODEL,
                contents=[types.Content(role="user", parts=[types.Part(text=prompt)])],
            )
        except InferenceError:
            raise
        except Exception as e:
            raise InferenceError(f"Chat call failed: {e}") from e
        return (response.text or "").strip()
