# reflective journal api
# fastapi app with async mongodb, jwt auth, and gemini-generated reflections

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from journal_api.config import settings
from journal_api.services.db import db
from journal_api.routers import auth, reflections

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """startup: connect to mongodb. shutdown: close connection."""
    logger.info("Starting reflective journal backend...")
    await db.connect()
    logger.info("Reflective journal backend ready")
    yield
    logger.info("Shutting down reflective journal backend...")
    await db.close()


app = FastAPI(
    title="Reflective Journal API",
    description="Journal entries turned into structured reflections: mood tags, themes, reframe, micro-action, prompts",
    version="0.1.0",
    lifespan=lifespan,
)

# cors - allow frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# register routers
app.include_router(auth.router)
app.include_router(reflections.router)


@app.get("/health")
async def health_check():
    """basic health check endpoint"""
    return {"status": "ok", "service": "reflective-journal-api"}
