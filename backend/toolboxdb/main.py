# backend/toolboxdb/main.py
import logging
import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .apps.accounts.router import employees_router
from .apps.accounts.router import router as settings_router
from .apps.lookups.router import router as lookups_router
from .apps.reports.router import router as reports_router
from .apps.supervision.router import router as supervision_router
from .apps.training.router import router as training_router

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://localhost:4173",
    ]


app = FastAPI(title="Toolbox Talks API", version="1.0.0")
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "Toolbox talks backend is running"}


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


app.include_router(settings_router)
app.include_router(employees_router)
app.include_router(lookups_router)
app.include_router(supervision_router)
app.include_router(training_router)
app.include_router(reports_router)
