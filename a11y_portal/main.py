import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from a11y_portal.api_routers.v1 import api_router
from a11y_portal.platform.config import settings
from a11y_portal.platform.exceptions import add_exception_handlers
from a11y_portal.platform.logger import LOG_FORMAT

logging.basicConfig(level=settings.LOG_LEVEL.upper(), format=LOG_FORMAT)

app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Multi-page accessibility scan orchestration",
    version="1.0.0",
    debug=settings.DEBUG,
)


@app.get("/", tags=["Info"])
def root():
    return {
        "app_name": settings.APP_NAME,
        "description": "Runs resumable Axe and Lighthouse audits across every page of a site's sitemap.",
        "version": "1.0.0",
        "docs_url": "/docs",
        "api_base": "/api/v1",
    }


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

add_exception_handlers(app)

app.include_router(api_router, prefix="/api/v1")
