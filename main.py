import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cache import build_query_cache
from config import get_settings
from db import create_db_and_tables
from errors import register_exception_handlers
from food_analysis import build_food_analyzer
from logging_config import setup_logging
from routers import ai, auth, chat, listings, pages, requests, users

settings = get_settings()
setup_logging(settings.log_level, use_json=settings.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    logger.info("Database tables ready")
    yield


app = FastAPI(title="FoodBridge", lifespan=lifespan)

app.state.query_cache = build_query_cache(settings.cache_enabled)
app.state.food_analyzer = build_food_analyzer(settings.openai_api_key, settings.openai_model)

register_exception_handlers(app)

app.include_router(auth.router)
app.include_router(users.router, prefix="/users")
app.include_router(listings.router, prefix="/listings")
app.include_router(requests.router, prefix="/requests")
app.include_router(chat.router, prefix="/chat")
app.include_router(ai.router, prefix="/ai")

app.include_router(pages.router)
