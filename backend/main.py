import logging

from apis.base import api_router
from core.config import settings
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def include_router(app):
    app.include_router(api_router)


app = FastAPI(title=settings.app_name, version=settings.app_version, description=settings.app_description)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
include_router(app)

if settings.demo_mode_enabled:
    logger.warning("Demo mode is on: synthetic data will be served when integrations are missing or fail")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
