"""Entry point for the telephony media stream to realtime speech relay service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.routes import router as api_router
from api.telephony_routes import router as telephony_router
from config.settings import get_settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Without relay credentials no call could ever be bridged.
    get_settings().require_credentials()
    yield


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Media Stream Relay",
    description="Bridges carrier media streams with a realtime speech assistant.",
    lifespan=lifespan,
)
app.include_router(api_router)
app.include_router(telephony_router)


def main() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
