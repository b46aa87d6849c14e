# storefront/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.api.routers.cart import router as cart_router
from storefront.core.config import get_settings
from storefront.core.logging import setup_logging
from storefront.core.scheduler import init_scheduler, shutdown_scheduler
from storefront.db.session import close_engines
from storefront.http_problem_handlers import register_exception_handlers
from storefront.metrics import router as metrics_router

_settings = get_settings()
setup_logging(_settings.LOG_LEVEL, json=_settings.JSON_LOG)
logger = logging.getLogger("storefront")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_scheduler()
    try:
        yield
    finally:
        shutdown_scheduler()
        await close_engines()


app = FastAPI(
    title="Storefront",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://127.0.0.1:8000",
        "http://localhost:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(cart_router)
app.include_router(metrics_router)


@app.get("/healthz")
async def healthz():
    return {"ok": True}
