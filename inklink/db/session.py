# inklink/db/session.py

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from inklink.core.config import settings

# The engine is the entry point to the database. It's configured with the
# database URL and handles the connection pooling.
engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

# SessionLocal is a factory for creating new Session objects.
# One session is one unit of work: every state transition commits once.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
