# db/init_db.py
import asyncio
import logging

from egirs.config import Settings
from egirs.db.database import DataBase

logging.basicConfig(level=Settings().log_level)
logger = logging.getLogger(__name__)


async def main() -> None:
    db = DataBase()
    try:
        await db.create_all()
        logger.info("Workflow tables created")
    finally:
        await db.dispose()


if __name__ == "__main__":
    asyncio.run(main())
