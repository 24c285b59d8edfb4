"""
Create missing tables and seed job statuses, priority levels and the default
trade categories.

Usage:
  python scripts/seed_reference_data.py

Idempotent: existing rows (matched by code, or by name for categories) are left alone.
"""
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from app.db import Base, SessionLocal, engine  # noqa: E402
from app.models import models  # noqa: E402,F401
from app.services.reference import reference_cache, seed_reference_data  # noqa: E402


def main():
    if engine.url.get_backend_name() == "sqlite":
        os.makedirs("var", exist_ok=True)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        seed_reference_data(session)
        # Fails loudly if a status or priority code is still missing
        reference_cache.load(session)
        print("Reference data seeded: statuses, priorities and categories.")
    finally:
        session.close()


if __name__ == "__main__":
    main()
