"""
Database Migration Script for Supabase
Brings an existing responses table up to the one-response-per-actor layout.
Run this once against the Supabase PostgreSQL database before switching
RESPONSE_STORE to "supabase".
"""

from sqlalchemy import text
from rsvp_app.database import engine, init_db
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

RESPONSE_COLUMNS = {
    "actor_key": "VARCHAR",
    "comments": "TEXT",
    "guest_phone": "VARCHAR",
    "response_token": "VARCHAR",
    "updated_at": "TIMESTAMP",
}


def migrate_responses_table():
    """Add actor keys, collapse duplicate responses, enforce uniqueness"""

    with engine.connect() as conn:
        trans = conn.begin()

        try:
            result = conn.execute(
                text(
                    """
                SELECT column_name
                FROM information_schema.columns
                WHERE table_name = 'responses'
            """
                )
            )
            existing = {row[0] for row in result.fetchall()}

            for column, column_type in RESPONSE_COLUMNS.items():
                if column not in existing:
                    logger.info(f"Adding {column} column to responses table...")
                    conn.execute(
                        text(f"ALTER TABLE responses ADD COLUMN {column} {column_type}")
                    )

            # Guests are keyed by trimmed, lower-cased email
            conn.execute(
                text(
                    """
                UPDATE responses
                SET actor_key = CASE
                    WHEN is_guest THEN 'guest:' || lower(trim(guest_email))
                    ELSE 'user:' || user_id::text
                END
                WHERE actor_key IS NULL
            """
                )
            )
            conn.execute(
                text(
                    """
                UPDATE responses SET updated_at = created_at WHERE updated_at IS NULL
            """
                )
            )

            # Keep only the latest response per (event, actor)
            deleted = conn.execute(
                text(
                    """
                DELETE FROM responses r
                USING responses newer
                WHERE r.event_id = newer.event_id
                  AND r.actor_key = newer.actor_key
                  AND (r.updated_at, r.id) < (newer.updated_at, newer.id)
            """
                )
            )
            logger.info(f"Removed {deleted.rowcount} superseded responses")

            conn.execute(
                text(
                    """
                ALTER TABLE responses
                DROP CONSTRAINT IF EXISTS uq_response_event_actor
            """
                )
            )
            conn.execute(
                text(
                    """
                ALTER TABLE responses
                ADD CONSTRAINT uq_response_event_actor UNIQUE (event_id, actor_key)
            """
                )
            )

            trans.commit()
            logger.info("✅ Responses table migration completed")

        except Exception as e:
            trans.rollback()
            logger.error(f"❌ Migration failed: {e}")
            raise


def verify_migration():
    """Verify that migration was successful"""

    try:
        with engine.connect() as conn:
            result = conn.execute(
                text(
                    """
                SELECT column_name
                FROM information_schema.columns
                WHERE table_name = 'responses'
            """
                )
            )
            column_names = {row[0] for row in result.fetchall()}

            missing_columns = [
                col for col in RESPONSE_COLUMNS if col not in column_names
            ]
            if missing_columns:
                logger.error(f"❌ Missing required columns: {missing_columns}")
                return False

            result = conn.execute(
                text(
                    """
                SELECT count(*) FROM (
                    SELECT event_id, actor_key FROM responses
                    GROUP BY event_id, actor_key HAVING count(*) > 1
                ) dupes
            """
                )
            )
            duplicates = result.scalar()
            if duplicates:
                logger.error(f"❌ {duplicates} actors still have multiple responses")
                return False

            logger.info("✅ Migration verification completed")
            return True

    except Exception as e:
        logger.error(f"❌ Verification failed: {e}")
        return False


def main():
    """Run the complete migration process"""
    init_db()
    logger.info("🚀 Starting Supabase migration...")

    migrate_responses_table()

    if not verify_migration():
        raise Exception("Migration verification failed")

    logger.info("🎉 Migration completed successfully!")
    logger.info("Next steps:")
    logger.info("1. Set RESPONSE_STORE=supabase and SUPABASE_SERVICE_ROLE_KEY")
    logger.info("2. Start your application")


if __name__ == "__main__":
    main()
