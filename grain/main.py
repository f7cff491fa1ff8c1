import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from grain import config
from grain.api.routes.comparisons import router as comparisons_router
from grain.api.routes.confrontations import router as confrontations_router
from grain.api.routes.diffs import router as diffs_router
from grain.api.routes.explain import router as explain_router
from grain.api.routes.inconsistencies import router as inconsistencies_router
from grain.api.routes.rules import router as rules_router
from grain.db import init_db

logging.basicConfig(
    level=config.log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    origins = config.cors_origins()
    if not origins:
        raise RuntimeError("CORS_ALLOW_ORIGINS must not be empty.")
    return origins


@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_db()
    logger.info("Database tables ready")
    yield


app = FastAPI(title="Grain API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(diffs_router)
app.include_router(explain_router)
app.include_router(inconsistencies_router)
app.include_router(confrontations_router)
app.include_router(comparisons_router)
app.include_router(rules_router)
