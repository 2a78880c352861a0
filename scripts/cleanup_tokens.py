"""
IP Platform - Token Cleanup Script

Runs one expiry sweep over refresh sessions and password reset tokens.
Meant for cron when the in-process sweep is disabled
(TOKEN_CLEANUP_ENABLED=false).

Usage:
    python -m scripts.cleanup_tokens
"""

import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ipplatform.config import settings
from ipplatform.auth.cleanup import run_token_cleanup
from ipplatform.auth.database import get_engine, get_session_factory, init_db


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper())

    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)

    with get_session_factory(engine)() as db:
        result = run_token_cleanup(db)

    engine.dispose()

    print(f"Deleted {result.sessions_deleted} refresh sessions")
    print(f"Deleted {result.reset_tokens_deleted} password reset tokens")


if __name__ == "__main__":
    main()
