"""
Initialize database and optionally issue an owner token.

Run this script once to set up the database:
    python init_db.py

Issue a bearer token for a link owner:
    python init_db.py --owner alice
"""

import argparse

from shortlinks.config import settings
from shortlinks.core.security import create_access_token
from shortlinks.database import create_db_engine, init_models


def init_database():
    """Create all database tables"""
    print(f"Creating database tables in {settings.DATABASE_URL}...")
    engine = create_db_engine(settings.DATABASE_URL)
    try:
        init_models(engine)
    finally:
        engine.dispose()
    print("Database tables created successfully!")


def issue_owner_token(owner_id: str):
    """Print a bearer token identifying the owner"""
    token = create_access_token(owner_id, settings)

    print("\n" + "="*50)
    print(f"Token for owner '{owner_id}'")
    print(f"(valid for {settings.ACCESS_TOKEN_EXPIRE_MINUTES} minutes)")
    print("="*50)
    print(token)
    print("="*50)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Short Links database initialization")
    parser.add_argument("--owner", help="issue a bearer token for this owner id")
    args = parser.parse_args()

    print("="*50)
    print("Short Links - Database Initialization")
    print("="*50)

    init_database()

    if args.owner:
        issue_owner_token(args.owner)

    print("\nDatabase initialization complete!")
    print("\nYou can now start the server with:")
    print("    uvicorn shortlinks.main:app --reload")
