from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.firebase import init_firebase
from app.core.database import engine, Base, get_db
from app.api.v1.router import api_router
from app import models  # noqa: F401  (registers tables on Base.metadata)
import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def get_version() -> str:
    """VERSION file next to the app package, or 0.1.0"""
    version_file = os.path.join(os.path.dirname(os.path.dirname(__file__)), "VERSION")
    if not os.path.exists(version_file):
        return "0.1.0"
    with open(version_file, "r") as f:
        return f.read().strip() or "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"lifespan: Startup - environment: {settings.environment}")
    init_firebase()
    # Alembic owns the schema in deployed environments
    if settings.environment == "development":
        Base.metadata.create_all(bind=engine)
    yield
    logger.info("lifespan: Shutdown")


app = FastAPI(
    title="Tiny Experiments API",
    version=get_version(),
    debug=settings.debug,
    redirect_slashes=False,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.api_v1_str)


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Liveness plus a round trip to the experiment store"""
    try:
        db.execute(text("SELECT 1"))
    except OperationalError as e:
        logger.error(f"health_check: Failure - {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "unavailable"},
            headers={"Retry-After": "5"},
        )
    return {"status": "healthy", "database": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
