from sqlalchemy.orm import Session
from sqlalchemy import and_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.dialects import postgresql, sqlite
from supabase import Client
from typing import Any, Dict, List, Optional, Protocol, Tuple
from datetime import datetime
from ..models.response import ResponseRecord
from ..database import RESPONSE_STORE, get_supabase_admin
import logging

logger = logging.getLogger(__name__)

# Columns overwritten when an actor responds again. id, created_at and
# response_token always keep their first-insert values.
OVERWRITE_COLUMNS = (
    "response_type",
    "guest_count",
    "comments",
    "guest_name",
    "guest_email",
    "guest_phone",
    "updated_at",
)

RECORD_COLUMNS = (
    "event_id",
    "actor_key",
    "user_id",
    "is_guest",
    "response_token",
    "created_at",
) + OVERWRITE_COLUMNS


class StorageError(Exception):
    """Backing store unavailable or rejected the write"""

    pass


# (response_type, distinct actors, total headcount)
TypeCount = Tuple[str, int, int]


class ResponseStore(Protocol):
    def find(self, event_id: int, actor_key: str) -> Optional[ResponseRecord]: ...

    def find_by_token(
        self, event_id: int, response_token: str
    ) -> Optional[ResponseRecord]: ...

    def upsert(self, values: Dict[str, Any]) -> ResponseRecord: ...

    def list_by_event(self, event_id: int) -> List[ResponseRecord]: ...

    def count_by_type(self, event_id: int) -> List[TypeCount]: ...


class SQLAlchemyResponseStore:
    """Response storage on the application database.

    Writes are a single INSERT ... ON CONFLICT DO UPDATE against the
    (event_id, actor_key) unique constraint, so concurrent first responses
    from the same actor in different processes merge instead of duplicating.
    """

    def __init__(self, db: Session):
        self.db = db

    def find(self, event_id: int, actor_key: str) -> Optional[ResponseRecord]:
        try:
            return (
                self.db.query(ResponseRecord)
                .filter(
                    and_(
                        ResponseRecord.event_id == event_id,
                        ResponseRecord.actor_key == actor_key,
                    )
                )
                .first()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to look up response: {str(e)}") from e

    def find_by_token(
        self, event_id: int, response_token: str
    ) -> Optional[ResponseRecord]:
        try:
            return (
                self.db.query(ResponseRecord)
                .filter(
                    and_(
                        ResponseRecord.event_id == event_id,
                        ResponseRecord.response_token == response_token,
                        ResponseRecord.is_guest == True,
                    )
                )
                .first()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to look up response: {str(e)}") from e

    def upsert(self, values: Dict[str, Any]) -> ResponseRecord:
        insert = self._dialect_insert()
        row = {column: values.get(column) for column in RECORD_COLUMNS}

        stmt = insert(ResponseRecord).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["event_id", "actor_key"],
            set_={column: stmt.excluded[column] for column in OVERWRITE_COLUMNS},
        )

        try:
            self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Response upsert failed: {str(e)}")
            raise StorageError(f"Failed to save response: {str(e)}") from e

        record = self.find(row["event_id"], row["actor_key"])
        if record is None:
            raise StorageError("Response was not persisted")
        return record

    def list_by_event(self, event_id: int) -> List[ResponseRecord]:
        try:
            return (
                self.db.query(ResponseRecord)
                .filter(ResponseRecord.event_id == event_id)
                .order_by(ResponseRecord.updated_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list responses: {str(e)}") from e

    def count_by_type(self, event_id: int) -> List[TypeCount]:
        try:
            rows = (
                self.db.query(
                    ResponseRecord.response_type,
                    func.count(func.distinct(ResponseRecord.actor_key)),
                    func.coalesce(func.sum(ResponseRecord.guest_count), 0),
                )
                .filter(ResponseRecord.event_id == event_id)
                .group_by(ResponseRecord.response_type)
                .all()
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to count responses: {str(e)}") from e

        return [(response_type, int(actors), int(heads)) for response_type, actors, heads in rows]

    def _dialect_insert(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise StorageError(f"Atomic upsert not supported on {dialect}")


class SupabaseResponseStore:
    """Response storage through the Supabase REST API (responses table)"""

    TABLE = "responses"

    def __init__(self, client: Client):
        self.client = client

    def find(self, event_id: int, actor_key: str) -> Optional[ResponseRecord]:
        try:
            result = (
                self.client.table(self.TABLE)
                .select("*")
                .eq("event_id", event_id)
                .eq("actor_key", actor_key)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to look up response: {str(e)}") from e

        return self._to_record(result.data[0]) if result.data else None

    def find_by_token(
        self, event_id: int, response_token: str
    ) -> Optional[ResponseRecord]:
        try:
            result = (
                self.client.table(self.TABLE)
                .select("*")
                .eq("event_id", event_id)
                .eq("response_token", response_token)
                .eq("is_guest", True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to look up response: {str(e)}") from e

        return self._to_record(result.data[0]) if result.data else None

    def upsert(self, values: Dict[str, Any]) -> ResponseRecord:
        payload = {}
        for column in RECORD_COLUMNS:
            value = values.get(column)
            payload[column] = value.isoformat() if isinstance(value, datetime) else value

        try:
            result = (
                self.client.table(self.TABLE)
                .upsert(payload, on_conflict="event_id,actor_key")
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to save response: {str(e)}") from e

        if not result.data:
            raise StorageError("Response was not persisted")
        return self._to_record(result.data[0])

    def list_by_event(self, event_id: int) -> List[ResponseRecord]:
        try:
            result = (
                self.client.table(self.TABLE)
                .select("*")
                .eq("event_id", event_id)
                .order("updated_at", desc=True)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to list responses: {str(e)}") from e

        return [self._to_record(row) for row in result.data or []]

    def count_by_type(self, event_id: int) -> List[TypeCount]:
        # PostgREST has no GROUP BY; fold the event's rows here
        totals: Dict[str, List[int]] = {}
        seen = set()
        for record in self.list_by_event(event_id):
            if record.actor_key in seen:
                continue
            seen.add(record.actor_key)
            bucket = totals.setdefault(record.response_type, [0, 0])
            bucket[0] += 1
            bucket[1] += record.guest_count or 0

        return [(response_type, actors, heads) for response_type, (actors, heads) in totals.items()]

    @staticmethod
    def _to_record(row: Dict[str, Any]) -> ResponseRecord:
        data = {key: row.get(key) for key in ("id",) + RECORD_COLUMNS}
        for column in ("created_at", "updated_at"):
            if isinstance(data[column], str):
                data[column] = datetime.fromisoformat(data[column])
        return ResponseRecord(**data)


def build_response_store(db: Session) -> ResponseStore:
    """Pick the configured response backend"""
    if RESPONSE_STORE == "supabase":
        return SupabaseResponseStore(get_supabase_admin())
    return SQLAlchemyResponseStore(db)
