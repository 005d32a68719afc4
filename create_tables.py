"""
Database table creation script for Identity Reconciliation API
This script tests the database connection and creates all tables.
Run this script after setting up your database to initialize the schema.
"""

import asyncio
import logging
import sys

from sqlalchemy import func, select

from database import DatabaseManager, db_manager
from models import Contact

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def create_tables(manager: DatabaseManager = db_manager) -> bool:
    """
    Create all database tables defined in the models
    Returns False instead of raising so the script can report the failure
    """
    logger.info("Starting database table creation...")

    if not await manager.test_connection():
        logger.error("Database connection failed - cannot create tables")
        return False

    try:
        await manager.create_tables()

        async with manager.get_session() as session:
            count = await session.scalar(select(func.count()).select_from(Contact))
            logger.info(f"Contacts table accessible - current count: {count}")

        return True

    except Exception as e:
        logger.error(f"Failed to create database tables: {e}")
        return False

    finally:
        await manager.dispose()


def main() -> int:
    logger.info("Identity Reconciliation API - Database Setup")

    if asyncio.run(create_tables()):
        logger.info("Database setup completed successfully!")
        logger.info("You can now start the API server with: python main.py")
        return 0

    logger.error("Database setup failed!")
    logger.error("Please check your database configuration and try again")
    return 1


if __name__ == "__main__":
    sys.exit(main())
