"""Sweep Job — runs one expiry sweep outside the web process.

Usage: python -m badgeledger.sweep_job

Invariants:
    - Same ExpirySweeper and counters as the HTTP trigger
    - Exit code 1 when any record failed, so the scheduler surfaces it
"""

import asyncio
import json
import logging
import sys

from badgeledger.config import get_settings
from badgeledger.db.session import create_session_factory
from badgeledger.infrastructure.observability import setup_logging
from badgeledger.services.container import build_production_services

logger = logging.getLogger(__name__)


async def run_once() -> dict:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    services = build_production_services(settings)
    factory = create_session_factory(settings.database_url)
    try:
        async with factory() as db:
            result = await services.sweeper.run(db)
    finally:
        await factory.kw["bind"].dispose()
    return result.to_dict()


def main() -> int:
    counts = asyncio.run(run_once())
    print(json.dumps(counts))
    return 1 if counts["errors"] else 0


if __name__ == "__main__":
    sys.exit(main())
