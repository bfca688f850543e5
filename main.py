import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from uselessfacts.database import Base, SessionLocal, engine
from uselessfacts.extractor import extractor
from uselessfacts.fetcher import FetcherService
from uselessfacts.routes.articles import router as articles_router
from uselessfacts.routes.facts import router as facts_router
from uselessfacts.routes.topics import router as topics_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    logger.info("Creating database tables if they don't exist...")
    Base.metadata.create_all(bind=engine)

    logger.info("Starting background RSS fetcher...")
    fetcher = FetcherService()
    task = asyncio.create_task(fetcher.run(SessionLocal, extractor))

    yield

    # --- Shutdown ---
    logger.info("Shutting down background fetcher...")
    task.cancel()


app = FastAPI(
    title="Useless Facts API",
    description="Crowd-rated useless facts, plus news articles ranked against user-selected topics and free-text queries.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(articles_router)
app.include_router(topics_router)
app.include_router(facts_router)
