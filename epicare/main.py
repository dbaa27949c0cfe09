import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from epicare.config import DUMMY_MODE, LOG_LEVEL
from epicare.routers import followup, triage
from epicare.services.session import sessions

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Epicare CDS triage service (dummy mode: %s)", DUMMY_MODE)
    yield
    sessions.clear()
    logger.info("Epicare CDS triage service shut down")


app = FastAPI(
    title="Epicare CDS Triage",
    description="Alert triage and smart defaults for epilepsy follow-up visits",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(triage.router)
app.include_router(followup.router)


@app.get("/health")
async def health():
    return {"status": "ok", "open_sessions": len(sessions)}
