from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker
from supabase import create_client, Client
import os
from dotenv import load_dotenv
from contextlib import contextmanager

load_dotenv()

# Database URLs
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./rsvp.db")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")  # Optional

# Which backend stores responses: "sqlalchemy" (default) or "supabase"
RESPONSE_STORE = os.getenv("RESPONSE_STORE", "sqlalchemy")

# SQLAlchemy setup
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in DATABASE_URL else {},
    pool_pre_ping=True,  # Good for PostgreSQL connections
    pool_recycle=300,  # Recycle connections every 5 minutes
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Supabase client setup (auth verification and optional response storage)
supabase: Client = None
supabase_admin: Client = None

if SUPABASE_URL and SUPABASE_ANON_KEY:
    supabase = create_client(SUPABASE_URL, SUPABASE_ANON_KEY)

    # Service role client bypasses RLS for guest responses
    if SUPABASE_SERVICE_ROLE_KEY:
        supabase_admin = create_client(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_supabase() -> Client:
    """Get Supabase client for regular operations"""
    if not supabase:
        raise RuntimeError(
            "Supabase client not initialized. Check your environment variables."
        )
    return supabase


def get_supabase_admin() -> Client:
    """Get Supabase admin client for administrative operations"""
    if not supabase_admin:
        raise RuntimeError(
            "Supabase admin client not initialized. Check SUPABASE_SERVICE_ROLE_KEY."
        )
    return supabase_admin


def init_db():
    """Initialize database tables"""
    Base.metadata.create_all(bind=engine)


def check_db_connection() -> dict:
    """Check database connectivity"""
    status = {"sqlalchemy": False, "supabase": False, "supabase_admin": False}

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        status["sqlalchemy"] = True
    except Exception:
        pass

    try:
        if supabase:
            supabase.table("events").select("id").limit(1).execute()
            status["supabase"] = True
    except Exception:
        pass

    try:
        if supabase_admin:
            supabase_admin.table("events").select("id").limit(1).execute()
            status["supabase_admin"] = True
    except Exception:
        pass

    return status
