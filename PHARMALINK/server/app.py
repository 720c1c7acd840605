from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from PHARMALINK.server.routes.drugs import (
    expansion_cache,
    label_matcher,
    router as drugs_router,
)
from PHARMALINK.server.routes.sources import router as sources_router
from PHARMALINK.server.utils.configurations import server_settings
from PHARMALINK.server.utils.logger import logger


###############################################################################
@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await expansion_cache.flush()
    await label_matcher.close()
    logger.info("PHARMALINK backend stopped")


###############################################################################
app = FastAPI(
    title=server_settings.fastapi.title,
    version=server_settings.fastapi.version,
    description=server_settings.fastapi.description,
    lifespan=lifespan,
)

app.include_router(drugs_router)
app.include_router(sources_router)

@app.get("/")
def redirect_to_docs() -> RedirectResponse:
    return RedirectResponse(url="/docs")
