# barkada/main.py

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import database
from .config import get_settings, configure_logging
from .errors import BarkadaError
from .routers import auth, web, user, analytics, playlists, sessions

settings = get_settings()
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


# ============================================================
# CREATE TABLES ON STARTUP
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    await database.init_db()
    yield


app = FastAPI(title="Barkada", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================
# ERROR ENVELOPE
# ============================================================

@app.exception_handler(BarkadaError)
async def barkada_error_handler(request: Request, exc: BarkadaError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Invalid request", "details": errors},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error"},
    )


# ============================================================
# ROUTES
# ============================================================

@app.get("/v1/test")
async def health():
    return {
        "success": True,
        "data": {"status": "API Working", "time": datetime.now(timezone.utc).isoformat()},
    }


app.include_router(auth.router)
app.include_router(web.router)
app.include_router(user.router)
app.include_router(analytics.router)
app.include_router(playlists.router)
app.include_router(sessions.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("barkada.main:app", host="0.0.0.0", port=8000)
