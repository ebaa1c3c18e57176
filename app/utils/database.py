from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from dotenv import load_dotenv
from pathlib import Path
import os
import sys

# ======================================================
# Load .env correctly in BOTH:
# - normal dev run (uvicorn main:app)
# - frozen onefile EXE (run_server.exe)
# ======================================================

if getattr(sys, "frozen", False):
    # sys.executable is the path to run_server.exe
    BASE_DIR = Path(sys.executable).parent
else:
    # This file is: <project_root>/app/utils/database.py
    BASE_DIR = Path(__file__).resolve().parents[2]

env_path = BASE_DIR / ".env"
load_dotenv(dotenv_path=env_path)

# ---------------------
# Read environment vars
# ---------------------
DB_HOST = os.getenv("DB_HOST", "127.0.0.1")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "emi_portal")
DB_USER = os.getenv("DB_USER", "postgres")
DB_PASS = os.getenv("DB_PASS", "")

# Fix the None / empty / "None" port issue permanently
if not DB_PORT or str(DB_PORT).lower() == "none":
    DB_PORT = "5432"

# ---------------------
# SQLAlchemy URL
# ---------------------
DATABASE_URL = os.getenv("DATABASE_URL") or (
    f"postgresql+psycopg2://{DB_USER}:{DB_PASS}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)

# ---------------------
# SQLAlchemy engine / session / Base
# ---------------------
if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        future=True,
    )
else:
    engine = create_engine(
        DATABASE_URL,
        echo=False,
        pool_pre_ping=True,  # drops dead connections automatically
        pool_size=5,
        max_overflow=10,
        future=True,
    )

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
