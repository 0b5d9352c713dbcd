"""
tuition_ledger/db/supabase.py
Supabase client and the async query helper used by the fee engine
"""
from supabase import create_client, Client
from tuition_ledger.core.config import settings
from tuition_ledger.core.exceptions import DatabaseError, DuplicateRecordError
from functools import lru_cache
from typing import Optional, Dict, List, Any
import logging

logger = logging.getLogger(__name__)

# Postgres SQLSTATE for unique_violation, surfaced by PostgREST as APIError.code
UNIQUE_VIOLATION = "23505"

# Tables the fee engine reads or writes; checked on startup
FEE_TABLES = ["students", "class_fees", "fee_accruals", "payments", "so_centers", "wallet_transactions"]


@lru_cache()
def get_supabase_admin_client() -> Client:
    """
    Supabase client with the service role key (cached).
    Fee seeding, accrual and payment writes bypass Row Level Security.

    Raises:
        DatabaseError: If the client cannot be created
    """
    try:
        client: Client = create_client(
            supabase_url=settings.SUPABASE_URL,
            supabase_key=settings.SUPABASE_SERVICE_KEY
        )
        logger.info("Supabase admin client created")
        return client
    except Exception as e:
        logger.error(f"Failed to create Supabase admin client: {e}")
        raise DatabaseError(f"Supabase connection failed: {str(e)}")


def _apply_filters(query, filters: Optional[Dict[str, Any]]):
    for column, value in (filters or {}).items():
        query = query.eq(column, value)
    return query


def _first(response) -> Optional[Dict[str, Any]]:
    return response.data[0] if response.data else None


class SupabaseQueries:
    """
    Thin async wrapper over the Supabase table API.

    Every failure surfaces as DatabaseError; unique constraint violations on
    insert surface as DuplicateRecordError so callers can tell "already
    posted" apart from "storage down".
    """

    def __init__(self, client: Client = None):
        self.client = client or get_supabase_admin_client()

    async def insert_one(self, table: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Insert one row and return it as stored.

        Example:
            >>> marker = await db.insert_one("fee_accruals", {
            ...     "student_id": "uuid", "period": "2025-03", "amount": "500.00"
            ... })
        """
        try:
            row = _first(self.client.table(table).insert(data).execute())
            if row is None:
                logger.warning(f"Insert into {table} returned no data")
            return row
        except Exception as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                logger.info(f"Duplicate insert into {table} rejected")
                raise DuplicateRecordError(f"Duplicate record in {table}: {str(e)}")
            logger.error(f"Error inserting into {table}: {e}")
            raise DatabaseError(f"Failed to insert into {table}: {str(e)}")

    async def select_all(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Rows matching all equality filters.

        Example:
            >>> active = await db.select_all("students", filters={"is_active": True})
        """
        try:
            query = _apply_filters(self.client.table(table).select("*"), filters)
            if order_by:
                query = query.order(order_by, desc=not ascending)
            if limit:
                query = query.limit(limit)

            response = query.execute()
            logger.debug(f"Selected {len(response.data)} rows from {table}")
            return response.data
        except Exception as e:
            logger.error(f"Error selecting from {table}: {e}")
            raise DatabaseError(f"Failed to select from {table}: {str(e)}")

    async def select_by_id(self, table: str, id_column: str, id_value: Any) -> Optional[Dict[str, Any]]:
        return await self.select_one(table, {id_column: id_value})

    async def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        First row matching the filters, or None.

        Example:
            >>> fee = await db.select_one(
            ...     "class_fees",
            ...     {"class_id": "uuid", "course_type": "monthly"}
            ... )
        """
        try:
            query = _apply_filters(self.client.table(table).select("*"), filters)
            return _first(query.limit(1).execute())
        except Exception as e:
            logger.error(f"Error selecting one from {table}: {e}")
            raise DatabaseError(f"Failed to select from {table}: {str(e)}")

    async def update_by_id(
        self,
        table: str,
        id_column: str,
        id_value: Any,
        data: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Update one row; returns the updated row, None if nothing matched"""
        try:
            response = self.client.table(table).update(data).eq(id_column, id_value).execute()
            row = _first(response)
            if row is None:
                logger.warning(f"Update in {table} matched no row with {id_column}={id_value}")
            return row
        except Exception as e:
            logger.error(f"Error updating {table}: {e}")
            raise DatabaseError(f"Failed to update {table}: {str(e)}")

    async def delete_by_id(self, table: str, id_column: str, id_value: Any) -> List[Dict[str, Any]]:
        try:
            response = self.client.table(table).delete().eq(id_column, id_value).execute()
            logger.info(f"Deleted from {table} where {id_column}={id_value}")
            return response.data
        except Exception as e:
            logger.error(f"Error deleting from {table}: {e}")
            raise DatabaseError(f"Failed to delete from {table}: {str(e)}")

    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        try:
            query = _apply_filters(self.client.table(table).select("*", count="exact"), filters)
            response = query.limit(0).execute()
            return response.count or 0
        except Exception as e:
            logger.error(f"Error counting {table}: {e}")
            raise DatabaseError(f"Failed to count {table}: {str(e)}")


async def initialize_database(db: Optional[SupabaseQueries] = None) -> bool:
    """
    Verify the fee engine tables are reachable.
    Run on application startup.
    """
    logger.info("Initializing database connection...")
    db = db or SupabaseQueries()

    for table in FEE_TABLES:
        try:
            await db.count(table)
            logger.info(f"✓ Table '{table}' verified")
        except DatabaseError as e:
            logger.error(f"✗ Table '{table}' not found or inaccessible: {e}")
            raise DatabaseError(f"Critical table '{table}' is missing")

    logger.info("✓ Database initialization complete")
    return True


__all__ = [
    'get_supabase_admin_client',
    'SupabaseQueries',
    'initialize_database'
]
