import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(sys.executable).resolve().parent if getattr(sys, "frozen", False) else Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env", override=True)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import app.models  # ensure models are registered
from app.core.config import CORS_ORIGINS, LOG_LEVEL
from app.core.exceptions import AppError
from app.utils.database import engine, Base
from app.initial_data import init_seed

from app.routers import (
    customers_router,
    customer_login_router,
    payments_router,
    emi_router,
    retailers_router,
    settings_router,
    reports_router,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("emi_portal")

app = FastAPI(title="EMI Portal Backend API", version="1.0")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s -> %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Routers
app.include_router(customer_login_router.router)
app.include_router(retailers_router.router)
app.include_router(customers_router.router)
app.include_router(payments_router.router)
app.include_router(emi_router.router)
app.include_router(settings_router.router)
app.include_router(reports_router.router)


@app.on_event("startup")
def on_startup():
    # DEV ONLY: production schema is managed outside the app
    Base.metadata.create_all(bind=engine)

    logger.info("Running initial database seeding")
    init_seed()
    logger.info("Seeding complete")


@app.get("/")
def root():
    return {"message": "EMI Portal Backend is running!!"}
