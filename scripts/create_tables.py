#!/usr/bin/env python3
"""
Create the database tables for the analytics engine.
Used on first start when migrations are not run.
"""
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

load_dotenv()

from sqlalchemy.exc import SQLAlchemyError

from analytics_engine.core.database import engine, Base
from analytics_engine import models  # noqa: F401


def create_tables():
    """Create all tables"""
    print("Creating database tables...")

    try:
        Base.metadata.create_all(bind=engine)

        print("Tables created successfully")
        for table in Base.metadata.sorted_tables:
            print(f"   - {table.name}")

    except SQLAlchemyError as e:
        print(f"Error creating tables: {e}")
        sys.exit(1)


if __name__ == "__main__":
    create_tables()
