"""
GeoQuest — Verification API Gateway
FastAPI server fronting the Gemini inference boundary for the GeoQuest client.

  POST /api/identify  — photo + GPS → VerificationVerdict JSON
  POST /api/tts       — guide / phrase narration → base64 PCM16 24 kHz
  POST /api/chat      — in-character lore chat with city legends
  GET  /health

Prompts are built server-side; the client only ever sends data.
CORS origins from ALLOWED_ORIGINS, identify rate-limited via slowapi.
"""

import logging
import os
import time
from typing import Any, Dict, List, Literal, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.concurrency import run_in_threadpool

load_dotenv()

from geoquest.api.gemini import TTS_MODEL, VISION_MODEL, GeminiOracle, InferenceError
from geoquest.engine.request_builder import VerificationInputError, decode_image, strip_data_url

# ─── Setup ────────────────────────────────────────────────────────────────────
logging.basicConfig(level=logging.INFO)
log = logging.getLogger("geoquest.api")

API_VERSION = "1.0.0"

# ─── Rate Limiter ─────────────────────────────────────────────────────────────
# e.g. RATE_LIMIT_IDENTIFY="10/minute"
RATE_LIMIT_IDENTIFY = os.getenv("RATE_LIMIT_IDENTIFY", "10/minute")
limiter = Limiter(key_func=get_remote_address)

# single oracle instance, client created lazily
oracle = GeminiOracle()


def get_oracle() -> GeminiOracle:
    return oracle


app = FastAPI(
    title="GeoQuest Verification API",
    description="Vision-based proof-of-visit verification for the Kutaisi city quest",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.on_event("startup")
async def _startup_validation():
    if not os.getenv("GEMINI_API_KEY") and not os.getenv("API_KEY"):
        log.critical(
            f"\n{'='*70}\n⚠️  GEMINI_API_KEY is not set. "
            f"/api/identify, /api/tts and /api/chat will return 500.\n{'='*70}"
        )
    else:
        log.info(f"✅ Startup validation passed. Vision={VISION_MODEL} TTS={TTS_MODEL}")


# ─── CORS ─────────────────────────────────────────────────────────────────────
# In production: ALLOWED_ORIGINS=https://yourdomain.com,https://app.yourdomain.com
_raw_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
ALLOWED_ORIGINS: List[str] = [o.strip() for o in _raw_origins.split(",") if o.strip()]
log.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ─── Request Models ───────────────────────────────────────────────────────────
class LocationInput(BaseModel):
    lat: Optional[float] = None
    lng: Optional[float] = None


class IdentifyRequest(BaseModel):
    # Both optional so that a missing field is a 400 {error}, not a 422
    image:        Optional[str]           = None
    userLocation: Optional[LocationInput] = None


class TTSRequest(BaseModel):
    text:   str                            = ""
    type:   Literal["guide", "phrase"]     = "guide"
    phrase: Optional[str]                  = None


class ChatTurn(BaseModel):
    role: str
    text: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    legend_name: str            = Field(..., alias="legendName")
    legend_bio:  str            = Field("",  alias="legendBio")
    history:     List[ChatTurn] = Field(default_factory=list)
    new_message: str            = Field(..., alias="newMessage")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()})
    log.warning(f"[REQUEST] Rejected body on {request.url.path}: {fields}")
    return _error(400, f"Invalid request body: {', '.join(f for f in fields if f) or 'malformed JSON'}")


# ─── Routes ───────────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {
        "status":       "operational",
        "version":      API_VERSION,
        "vision_model": VISION_MODEL,
        "tts_model":    TTS_MODEL,
        "timestamp":    int(time.time()),
    }


@app.post("/api/identify")
@limiter.limit(RATE_LIMIT_IDENTIFY)
async def identify(
    request: Request,                          # required by slowapi
    body:    IdentifyRequest,
    oracle:  GeminiOracle = Depends(get_oracle),
) -> Any:
    loc = body.userLocation
    if not body.image or loc is None or loc.lat is None or loc.lng is None:
        return _error(400, "Missing image or location data")

    image_b64 = strip_data_url(body.image)
    try:
        image_bytes = decode_image(image_b64)
    except VerificationInputError as e:
        return _error(400, str(e))
    log.info(f"[IDENTIFY] Image received — {len(image_bytes):,} bytes @ ({loc.lat}, {loc.lng})")

    try:
        verdict = await run_in_threadpool(oracle.identify_landmark, image_b64, loc.lat, loc.lng)
    except InferenceError as e:
        log.error(f"[IDENTIFY] {e}")
        return _error(500, "AI Processing Failed")

    return verdict.model_dump(exclude_none=True)


@app.post("/api/tts")
async def tts(body: TTSRequest, oracle: GeminiOracle = Depends(get_oracle)) -> Dict[str, Any]:
    if not (body.text or body.phrase):
        return _error(400, "Missing text")

    try:
        audio = await run_in_threadpool(oracle.synthesize_speech, body.text, body.type, body.phrase)
    except InferenceError as e:
        log.error(f"[TTS] {e}")
        return _error(500, "Audio Gen Failed")
    return {"audio": audio}


@app.post("/api/chat")
async def chat(body: ChatRequest, oracle: GeminiOracle = Depends(get_oracle)) -> Dict[str, Any]:
    history = [turn.model_dump() for turn in body.history]
    try:
        reply = await run_in_threadpool(
            oracle.chat_as_legend, body.legend_name, body.legend_bio, history, body.new_message
        )
    except InferenceError as e:
        log.error(f"[CHAT] {e}")
        return _error(500, "Chat Failed")
    return {"reply": reply}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "geoquest.api.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=False,
    )
