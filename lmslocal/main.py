"""
LMSLocal - FastAPI Application

Serves the competition API: rounds, picks, results and standings for
Last Man Standing football prediction competitions.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__, config
from .api.dependencies import reset_notifier
from .api.routes import router
from .seed import seed_teams
from .services.exceptions import LMSError
from .storage import get_database, DatabaseError

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    print("[*] Opening database...")
    db = get_database()
    if db.health_check():
        print("[+] Database ready")
    else:
        print("[!] Database health check failed")

    loaded = seed_teams(db)
    if loaded:
        print(f"[+] Loaded default team pool ({loaded} teams)")

    print("[*] App is ready.")

    yield

    print("[*] Shutting down...")
    reset_notifier()


app = FastAPI(
    title="LMSLocal",
    description="Last Man Standing football prediction competitions",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LMSError)
async def lms_error_handler(request: Request, exc: LMSError) -> JSONResponse:
    """Errors raised from dependencies (authentication) use the envelope too."""
    return JSONResponse(content={"return_code": exc.return_code, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg', 'invalid value')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(content={"return_code": "VALIDATION_ERROR", "message": message})


app.include_router(router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    try:
        healthy = get_database().health_check()
    except DatabaseError as e:
        logger.error(f"Health check failed: {e}")
        healthy = False
    return {
        "status": "ok" if healthy else "degraded",
        "database": healthy,
        "version": __version__,
    }


# Run with: uvicorn lmslocal.main:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
