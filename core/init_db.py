"""
Initialize the database tables.
"""
from core.db import create_db_and_tables
from core.logger import logger


def main():
    logger.info("Create tables...")
    create_db_and_tables()


if __name__ == "__main__":
    main()
