import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from app.core.auth_middleware import jwt_auth_middleware
from app.core.config import get_settings
from app.core.errors import AppError, app_error_handler
from app.db.postgres import engine
from app.db.redis import close_redis, redis_client
from app.modules.auth.router import router as auth_router


settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Warm up connections to fail fast on misconfig
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    await redis_client.ping()

    yield

    await close_redis()
    await engine.dispose()


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
app.middleware("http")(jwt_auth_middleware)
app.add_exception_handler(AppError, app_error_handler)
app.include_router(auth_router)


@app.get("/health")
async def healthcheck():
    return {"status": "ok"}
