"""Run due webhook retries and LMS auto-syncs once (for deployments without Celery beat)."""
import argparse
import asyncio

from examforge.core.logging import setup_logging
from examforge.database import close_db, init_db
from examforge.integrations.webhook.manager import process_due_retries
from examforge.tasks.lms import run_due_syncs


async def run_once(with_lms: bool) -> None:
    """Fire due webhook retries and, optionally, due LMS syncs."""
    await init_db()
    try:
        retries = await process_due_retries()
        print(f"✓ Processed {retries} webhook retries")

        if with_lms:
            synced = await run_due_syncs()
            print(f"✓ Synced {synced} LMS integrations")
    finally:
        await close_db()


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--with-lms", action="store_true", help="also run due LMS auto-syncs")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(run_once(args.with_lms))


if __name__ == "__main__":
    main()
