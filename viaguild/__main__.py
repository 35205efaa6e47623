"""
viaguild.__main__ — Entry point for ``python -m viaguild``
============================================================

Wiring:
1. Load .env (secrets, DATABASE_URL).
2. Load config.yaml (soft settings) so a broken config fails fast.
3. Create the SQLAlchemy engine, ensure tables exist and seed icons.
4. Sweep expired temporary uploads.
5. Serve the API with uvicorn (blocking).

Run with::

    uv run python -m viaguild
"""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

from viaguild.config import load_config
from viaguild.database.engine import create_db_engine, init_db
from viaguild.services.storage_service import cleanup_expired_temp_assets

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("viaguild")


def main() -> None:
    """Bootstrap and serve the ViaGuild badge API."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    cfg = load_config()
    logger.info("Config loaded for %s", cfg.site_name)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)

    # 4. Housekeeping.
    cleanup_expired_temp_assets(engine)

    # 5. Serve.
    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    logger.info("Starting API on %s:%d", host, port)
    uvicorn.run("viaguild.api.main:app", host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
