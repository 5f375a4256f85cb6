import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from app.api.knowledge import router as knowledge_router
from app.api.sessions import router as sessions_router
from app.api.websocket import ws_router
from app.config import settings
from app.core import runtime
from app.core.log import configure_logging
from app.pipeline.skills import load_skills
from app.vectorstore.ingest import seed_knowledge_base

logger = logging.getLogger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)

    skills = load_skills(settings.SKILLS_DIR)
    runtime.aggregator.set_skills(skills)
    logger.info("[APP] Loaded %d clinical skills from %s", len(skills), settings.SKILLS_DIR)

    if settings.KNOWLEDGE_SEED_ON_STARTUP:
        try:
            added = await seed_knowledge_base(runtime.knowledge_index)
            logger.info("[APP] Knowledge seeding added %d chunks", added)
        except Exception:
            logger.exception("[APP] Knowledge seeding failed, continuing without it")

    yield

    runtime.scheduler.shutdown()
    logger.info("[APP] Shutdown complete")


app = FastAPI(title="Clinical Suggestions", lifespan=lifespan)

app.include_router(sessions_router)
app.include_router(knowledge_router)
app.include_router(ws_router)


@app.get("/health")
def health():
    return {"status": "ok", "env": settings.ENV}


if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        reload=False,
    )
