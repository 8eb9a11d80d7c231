from __future__ import annotations

import math
import os
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Load .env (and .env.local overrides) before modules read their settings
_HERE = os.path.dirname(os.path.abspath(__file__))
load_dotenv(os.path.join(_HERE, ".env"))
load_dotenv(os.path.join(_HERE, ".env.local"), override=True)

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from pydantic import BaseModel

from core import run_feature_battle, run_underground_battle
from lib.battle import CATEGORIES
from lib.spotify import AuthError, BattleError, FetchError, RateLimited, ValidationError
import logging

# Basic logging configuration to ensure logger outputs appear in the terminal
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)


# =========================
# Pydantic models
# =========================

class BattleBody(BaseModel):
    playlist1: Optional[str] = None
    playlist2: Optional[str] = None
    refresh: bool = False  # bypass the playlist cache


class FeatureBattleBody(BattleBody):
    category: Optional[str] = None


class BattleMetaModel(BaseModel):
    model_config = {"extra": "allow"}

    cache_hit: Optional[bool] = None
    fetch_ms: Optional[float] = None
    total_ms: Optional[float] = None
    tracks: Optional[List[int]] = None


class BattleResponse(BaseModel):
    message: str
    verdict: str  # "first" | "second" | "tie"
    name: Optional[str] = None
    image: Optional[str] = None
    means: Dict[str, float] = {}
    meta: Optional[BattleMetaModel] = None


class CategoryModel(BaseModel):
    label: str
    feature: str
    lower_wins: bool


# =========================
# FastAPI app & CORS
# =========================

app = FastAPI(
    title="Shuffle Battle",
    version="1.0.0",
)

# Add GZip middleware for response compression
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Add request body size limit middleware (battle bodies are a few hundred bytes)
from starlette.middleware.base import BaseHTTPMiddleware

MAX_BODY_SIZE = int(os.getenv("MAX_BODY_SIZE", 64 * 1024))


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.method in ("POST", "PUT", "PATCH"):
            content_length = request.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > MAX_BODY_SIZE:
                logger.warning(f"[RequestSizeLimit] Rejected oversized request: {content_length} bytes from {request.client}")
                return JSONResponse(
                    status_code=413,
                    content={"detail": f"Request body too large (max {MAX_BODY_SIZE} bytes)"}
                )
        return await call_next(request)

app.add_middleware(RequestSizeLimitMiddleware)

@app.on_event("startup")
def _log_startup():
    logger.info("shuffle-battle: startup event triggered")


# デフォルトの許可オリジン
default_origins = [
    "http://localhost:3000",
    "http://localhost:5173",
]

# 環境変数 ALLOWED_ORIGINS があればそれを優先（カンマ区切り）
env_origins = os.getenv("ALLOWED_ORIGINS")
if env_origins:
    origins = [o.strip() for o in env_origins.split(",") if o.strip()]
else:
    origins = default_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =========================
# Health check
# =========================

@app.get("/health", tags=["system"])
def health() -> Dict[str, Any]:
    return {
        "ok": True,
        "status": "ok",
        "build_commit": os.getenv("RENDER_GIT_COMMIT", "local")[:7],
    }


@app.get("/", tags=["system"])
def root() -> Dict[str, Any]:
    return {"ok": True, "status": "ok"}


# =========================
# Core helpers
# =========================

_ERROR_STATUS = (
    (ValidationError, 422),
    (RateLimited, 429),
    (AuthError, 502),
    (FetchError, 502),
)


def _sanitize_url(raw: Optional[str]) -> Optional[str]:
    """
    Basic server-side URL sanitization: trim whitespace, strip surrounding
    angle brackets and surrounding single/double quotes.
    """
    if not raw:
        return raw
    s = raw.strip()
    if s.startswith('<') and s.endswith('>'):
        s = s[1:-1].strip()
    # strip surrounding quotes
    s = s.strip('\'"')
    return s


def _to_http_exception(e: BattleError) -> HTTPException:
    """Map a pipeline failure to a short user-facing response; details stay in the log."""
    status_code = 500
    for cls, code in _ERROR_STATUS:
        if isinstance(e, cls):
            status_code = code
            break

    headers = None
    if isinstance(e, RateLimited) and e.retry_after is not None:
        headers = {"Retry-After": str(int(math.ceil(e.retry_after)))}

    return HTTPException(
        status_code=status_code,
        detail={"error": e.__class__.__name__, "message": e.user_message},
        headers=headers,
    )


# =========================
# Endpoints
# =========================

@app.get("/api/categories", response_model=List[CategoryModel])
def list_categories() -> List[Dict[str, Any]]:
    return [
        {"label": c.label, "feature": c.feature, "lower_wins": c.inverted}
        for c in CATEGORIES.values()
    ]


@app.post("/api/battle/underground", response_model=BattleResponse)
async def underground_battle(body: BattleBody):
    """
    どちらのプレイリストがよりアンダーグラウンドか（平均 popularity が低い方）を判定。
    """
    p1 = _sanitize_url(body.playlist1)
    p2 = _sanitize_url(body.playlist2)
    try:
        return await run_underground_battle(p1, p2, refresh=body.refresh)
    except BattleError as e:
        logger.error(f"[api/battle/underground] playlist1={p1} playlist2={p2}: {e} meta={e.meta}")
        raise _to_http_exception(e) from e


@app.post("/api/battle/features", response_model=BattleResponse)
async def feature_battle(body: FeatureBattleBody):
    """
    選択したカテゴリ（Sadder / Energetic など）に対応する audio feature の平均値で比較。
    """
    p1 = _sanitize_url(body.playlist1)
    p2 = _sanitize_url(body.playlist2)
    try:
        return await run_feature_battle(p1, p2, body.category, refresh=body.refresh)
    except BattleError as e:
        logger.error(
            f"[api/battle/features] playlist1={p1} playlist2={p2} category={body.category}: {e} meta={e.meta}"
        )
        raise _to_http_exception(e) from e


# =========================
# Local dev entrypoint
# =========================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
