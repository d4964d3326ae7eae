"""Create the order tables against the configured database."""
import os
import sys

from dotenv import load_dotenv

BACKEND_DIR = os.path.join(os.path.dirname(__file__), "..", "webapp", "backend")

# Load .env from backend directory before the engine is built
load_dotenv(os.path.join(BACKEND_DIR, ".env"))
sys.path.insert(0, BACKEND_DIR)

from sqlalchemy.exc import SQLAlchemyError

from database import Base, engine
import models  # noqa: F401  registers tables on Base.metadata


def main():
    print(f"Connecting to {engine.url.render_as_string(hide_password=True)}...")
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        print(f"  FAIL   {e}")
        sys.exit(1)

    for table in Base.metadata.sorted_tables:
        print(f"  OK     {table.name}")
    print("\nSchema is up to date.")


if __name__ == "__main__":
    main()
