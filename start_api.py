#!/usr/bin/env python3
"""
Run migrations (same process, same DATABASE_URL), then seed, then uvicorn.
Ensures tables exist before seed and app start.
"""
import os
import sys

from broheal.core.config import settings

# 1) Wait for DB (Postgres only)
if settings.DATABASE_URL.startswith("postgresql"):
    import wait_for_db  # noqa: F401

# 2) Run migrations using the same settings as the app
from alembic.config import Config
from alembic import command

alembic_cfg = Config(os.path.join(os.path.dirname(os.path.abspath(__file__)), "alembic.ini"))
alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
command.upgrade(alembic_cfg, "head")

# 3) Seed default settings
from broheal.seed import run as run_seed
run_seed()

# 4) Start uvicorn (replace current process)
os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "broheal.main:app", "--host", "0.0.0.0", "--port", os.getenv("PORT", "8000")],
)
