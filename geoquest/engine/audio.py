"""
GeoQuest — Audio Narration Cache & PCM decoding
===============================================

Narration audio comes back from the TTS model as base64 raw PCM:
16-bit signed little-endian, mono, 24 kHz. Generating it is slow and
rate-limited, so results are memoized for the process lifetime by a
semantic key ("guide:<landmark name>" / "phrase:<phrase text>").

No eviction (the working set is a few dozen landmarks and phrases) and no
negative caching: a failed generation is retried on the next request.
"""

from __future__ import annotations

import base64
import logging
import threading
from typing import Callable, Optional, Union

import numpy as np

from geoquest.engine.models import Landmark

logger = logging.getLogger("geoquest.audio")

PCM_SAMPLE_RATE = 24_000
PCM_CHANNELS    = 1
PCM_SCALE       = 32768.0


# ══════════════════════════════════════════════════════════════════════════════
#  PCM decoding
# ══════════════════════════════════════════════════════════════════════════════

def decode_pcm(data: Union[bytes, bytearray, str]) -> np.ndarray:
    """
    Convert raw PCM16-LE (bytes or base64 text) into float32 samples in
    [-1.0, 1.0). An odd trailing byte from a truncated transfer is dropped.
    """
    if isinstance(data, str):
        data = base64.b64decode(data)

    if len(data) % 2 != 0:
        logger.warning(f"[AUDIO] Odd PCM16 byte length ({len(data)}) — dropping last byte")
        data = data[:-1]

    samples = np.frombuffer(bytes(data), dtype="<i2")
    return samples.astype(np.float32) / PCM_SCALE


def pcm_duration_seconds(samples: np.ndarray, sample_rate: int = PCM_SAMPLE_RATE) -> float:
    return len(samples) / float(sample_rate)


# ══════════════════════════════════════════════════════════════════════════════
#  Cache
# ══════════════════════════════════════════════════════════════════════════════

def guide_key(landmark_name: str) -> str:
    return f"guide:{landmark_name}"


def phrase_key(phrase: str) -> str:
    return f"phrase:{phrase}"


class AudioNarrationCache:

    def __init__(self):
        self._store: dict[str, str] = {}
        self._key_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)

    def get_audio(self, key: str, generator: Callable[[], str]) -> str:
        """
        Return cached base64 audio for `key`, invoking `generator` only on a
        miss. Concurrent misses on the same key share one generation; other
        keys are not blocked. Exceptions from the generator propagate and
        nothing is stored.
        """
        with self._lock:
            cached = self._store.get(key)
            key_lock = self._key_locks.setdefault(key, threading.Lock())
        if cached is not None:
            logger.info(f"[AUDIO] Cache hit: {key}")
            return cached

        with key_lock:
            # another thread may have filled it while we waited
            with self._lock:
                cached = self._store.get(key)
            if cached is not None:
                logger.info(f"[AUDIO] Cache hit after wait: {key}")
                return cached

            logger.info(f"[AUDIO] Cache miss: {key} — generating")
            audio = generator()
            if not audio:
                raise ValueError(f"Audio generator returned no data for '{key}'")

            with self._lock:
                self._store[key] = audio
            return audio

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


# ══════════════════════════════════════════════════════════════════════════════
#  Narration service (cache + TTS client)
# ══════════════════════════════════════════════════════════════════════════════

class NarrationService:
    """
    Fetches landmark guides and phrase pronunciations through the API's TTS
    endpoint. `client` is anything with
    `synthesize_speech(text, kind, phrase=None) -> str` (see
    request_builder.VerificationClient).
    """

    def __init__(self, client, cache: Optional[AudioNarrationCache] = None):
        self.client = client
        self.cache  = cache if cache is not None else AudioNarrationCache()

    def guide_audio(self, landmark: Landmark) -> str:
        text = f"Gamarjoba! Welcome to {landmark.name}. {landmark.description}".strip()
        return self.cache.get_audio(
            guide_key(landmark.name),
            lambda: self.client.synthesize_speech(text, "guide"),
        )

    def phrase_audio(self, phrase: str) -> str:
        return self.cache.get_audio(
            phrase_key(phrase),
            lambda: self.client.synthesize_speech(phrase, "phrase", phrase=phrase),
        )

    def guide_samples(self, landmark: Landmark) -> np.ndarray:
        return decode_pcm(self.guide_audio(landmark))

    def phrase_samples(self, phrase: str) -> np.ndarray:
        return decode_pcm(self.phrase_audio(phrase))
