import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from meeting_copilot.api.deps import get_copilot
from meeting_copilot.api.routes.meetings import router as meetings_router
from meeting_copilot.api.routes.questions import router as questions_router
from meeting_copilot.api.routes.transcripts import router as transcripts_router
from meeting_copilot.config import settings
from meeting_copilot.runtime import MeetingCopilot


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    copilot = MeetingCopilot.build(settings)
    await copilot.start()
    app.state.copilot = copilot
    try:
        yield
    finally:
        await copilot.shutdown()


app = FastAPI(
    title="Meeting Copilot API",
    description="Live meeting transcripts and retrieval-augmented Q&A",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(transcripts_router)
app.include_router(questions_router)
app.include_router(meetings_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@app.get("/api/stats")
async def stats(copilot: MeetingCopilot = Depends(get_copilot)) -> dict[str, Any]:
    """Buffer, job queue and embedding cache counters."""
    return copilot.stats()
