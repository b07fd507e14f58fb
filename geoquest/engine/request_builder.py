"""
GeoQuest — Verification Request Builder
=======================================

Client side of the inference boundary. Marshals a captured photo and the
device coordinates into the `/api/identify` request and turns every
transport or schema failure into the "Connection Error" verdict so the
capture flow never has to catch anything except bad input.

  prepare_image()      — ≤1024px longest side, JPEG q70, base64
  build_request()      — input validation + JSON body
  VerificationClient   — identify / synthesize_speech / chat_with_legend
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import os
from typing import Optional, Union

import requests
from PIL import Image
from pydantic import ValidationError

from geoquest.engine.models import (
    CONNECTION_ERROR_VERDICT,
    Coordinates,
    VerificationVerdict,
)

logger = logging.getLogger("geoquest.request")

# ── Configuration ──────────────────────────────────────────────────────────────
API_BASE_URL    = os.getenv("GEOQUEST_API_URL", "http://127.0.0.1:8000")
# None → transport default (no explicit timeout)
_raw_timeout    = os.getenv("GEOQUEST_HTTP_TIMEOUT", "")
HTTP_TIMEOUT    = float(_raw_timeout) if _raw_timeout else None
MAX_IMAGE_DIM   = 1024
JPEG_QUALITY    = 70


class VerificationInputError(ValueError):
    """Missing or unusable image/location. Never forwarded to inference."""


class NarrationUnavailableError(RuntimeError):
    """TTS or chat call failed; callers may retry later."""


# ══════════════════════════════════════════════════════════════════════════════
#  Image marshalling
# ══════════════════════════════════════════════════════════════════════════════

def strip_data_url(image_b64: str) -> str:
    """'data:image/jpeg;base64,XXXX' → 'XXXX'."""
    if image_b64.startswith("data:") and "," in image_b64:
        return image_b64.split(",", 1)[1]
    return image_b64


def encode_image(image_bytes: bytes) -> str:
    return base64.b64encode(image_bytes).decode("ascii")


def decode_image(image_b64: str) -> bytes:
    try:
        return base64.b64decode(strip_data_url(image_b64), validate=True)
    except (binascii.Error, ValueError) as e:
        raise VerificationInputError(f"Image is not valid base64: {e}") from e


def prepare_image(
    image:       Union[bytes, str],
    max_dim:     int = MAX_IMAGE_DIM,
    quality:     int = JPEG_QUALITY,
) -> str:
    """
    Downscale to `max_dim` on the longest side and re-encode as JPEG.
    Returns base64 text without a data-URL prefix.
    """
    raw = decode_image(image) if isinstance(image, str) else image
    if not raw:
        raise VerificationInputError("Missing image data")

    try:
        img = Image.open(io.BytesIO(raw))
        img = img.convert("RGB")
        img.thumbnail((max_dim, max_dim), Image.LANCZOS)
        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=quality)
    except (OSError, Image.DecompressionBombError) as e:
        raise VerificationInputError(f"Unreadable image: {e}") from e

    out = buf.getvalue()
    logger.info(f"[REQUEST] Image prepared: {img.size[0]}x{img.size[1]} {len(out) / 1024:.0f}KB")
    return encode_image(out)


def build_request(image_b64: Optional[str], location: Optional[Coordinates]) -> dict:
    if not image_b64:
        raise VerificationInputError("Missing image data")
    if location is None or location.lat is None or location.lng is None:
        raise VerificationInputError("Missing location data")
    return {
        "image":        strip_data_url(image_b64),
        "userLocation": {"lat": float(location.lat), "lng": float(location.lng)},
    }


# ══════════════════════════════════════════════════════════════════════════════
#  HTTP client
# ══════════════════════════════════════════════════════════════════════════════

class VerificationClient:

    def __init__(
        self,
        base_url: str                       = API_BASE_URL,
        timeout:  Optional[float]           = HTTP_TIMEOUT,
        session:  Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout  = timeout
        self.session  = session or requests.Session()

    def _post(self, path: str, body: dict) -> dict:
        response = self.session.post(f"{self.base_url}{path}", json=body, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    # ── Vision ────────────────────────────────────────────────────────────────
    def identify(self, image_b64: Optional[str], location: Optional[Coordinates]) -> VerificationVerdict:
        """
        Raises VerificationInputError for missing input. Any other failure
        yields CONNECTION_ERROR_VERDICT.
        """
        body = build_request(image_b64, location)

        try:
            data = self._post("/api/identify", body)
        except (requests.RequestException, ValueError) as e:
            logger.error(f"[REQUEST] Identify call failed: {e}")
            return CONNECTION_ERROR_VERDICT

        try:
            verdict = VerificationVerdict.model_validate(data)
        except ValidationError as e:
            logger.error(f"[REQUEST] Malformed verdict quarantined: {e.error_count()} errors — {data!r:.200}")
            return CONNECTION_ERROR_VERDICT

        logger.info(
            f"[REQUEST] Verdict: confirmed={verdict.location_confirmed} "
            f"place='{verdict.place_name}' points={verdict.points_earned}"
        )
        return verdict

    # ── Audio ─────────────────────────────────────────────────────────────────
    def synthesize_speech(self, text: str, kind: str, phrase: Optional[str] = None) -> str:
        body = {"text": text, "type": kind}
        if phrase is not None:
            body["phrase"] = phrase
        try:
            data = self._post("/api/tts", body)
        except (requests.RequestException, ValueError) as e:
            raise NarrationUnavailableError(f"Audio generation failed: {e}") from e

        if not isinstance(data, dict) or not data.get("audio"):
            reason = data.get("error") if isinstance(data, dict) else None
            raise NarrationUnavailableError(reason or "API returned no audio data.")
        return data["audio"]

    # ── Lore chat ─────────────────────────────────────────────────────────────
    def chat_with_legend(self, legend_name: str, legend_bio: str, history: list[dict], message: str) -> str:
        body = {
            "legendName": legend_name,
            "legendBio":  legend_bio,
            "history":    history,
            "newMessage": message,
        }
        try:
            data = self._post("/api/chat", body)
        except (requests.RequestException, ValueError) as e:
            raise NarrationUnavailableError(f"Chat failed: {e}") from e
        return data.get("reply", "")
