"""Pytest configuration and fixtures."""

import asyncio
import os
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")

from tuition_ledger.core.clock import fixed_clock  # noqa: E402
from tuition_ledger.core.exceptions import DatabaseError, DuplicateRecordError  # noqa: E402

UNIQUE_KEYS = {
    "fee_accruals": ("student_id", "period"),
    "class_fees": ("class_id", "course_type"),
}


class InMemoryQueries:
    """In-memory stand-in for SupabaseQueries with the same async interface."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.failing_reads: Set[str] = set()
        self.failing_updates: Set[Tuple[str, str]] = set()
        self.failing_inserts: Set[str] = set()
        self.failing_deletes: Set[str] = set()
        self.writes: List[Tuple[str, str]] = []

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def seed(self, table: str, **row: Any) -> Dict[str, Any]:
        row.setdefault("id", str(uuid.uuid4()))
        self.rows(table).append(row)
        return row

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
        return all(row.get(key) == value for key, value in (filters or {}).items())

    async def insert_one(self, table: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(0)
        if table in self.failing_inserts:
            raise DatabaseError(f"Failed to insert into {table}: boom")
        key = UNIQUE_KEYS.get(table)
        if key and any(all(r.get(k) == data.get(k) for k in key) for r in self.rows(table)):
            raise DuplicateRecordError(f"Duplicate record in {table}")
        row = {"id": str(uuid.uuid4()), "created_at": datetime.now().isoformat(), **data}
        self.rows(table).append(row)
        self.writes.append(("insert", table))
        return dict(row)

    async def select_all(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        if table in self.failing_reads:
            raise DatabaseError(f"Failed to select from {table}: boom")
        result = [dict(r) for r in self.rows(table) if self._matches(r, filters)]
        if order_by:
            result.sort(key=lambda r: str(r.get(order_by) or ""), reverse=not ascending)
        return result[:limit] if limit else result

    async def select_by_id(self, table: str, id_column: str, id_value: Any) -> Optional[Dict[str, Any]]:
        rows = await self.select_all(table, {id_column: id_value})
        return rows[0] if rows else None

    async def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = await self.select_all(table, filters, limit=1)
        return rows[0] if rows else None

    async def update_by_id(
        self, table: str, id_column: str, id_value: Any, data: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(0)
        if (table, id_value) in self.failing_updates:
            raise DatabaseError(f"Failed to update {table}: boom")
        for row in self.rows(table):
            if row.get(id_column) == id_value:
                row.update(data)
                self.writes.append(("update", table))
                return dict(row)
        return None

    async def delete_by_id(self, table: str, id_column: str, id_value: Any) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        if table in self.failing_deletes:
            raise DatabaseError(f"Failed to delete from {table}: boom")
        deleted = [r for r in self.rows(table) if r.get(id_column) == id_value]
        self.tables[table] = [r for r in self.rows(table) if r.get(id_column) != id_value]
        self.writes.append(("delete", table))
        return deleted

    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        return len(await self.select_all(table, filters))


@pytest.fixture
def db() -> InMemoryQueries:
    """Fresh in-memory database for each test."""
    return InMemoryQueries()


@pytest.fixture
def class_id() -> str:
    return "class-10"


@pytest.fixture
def monthly_schedule(db: InMemoryQueries, class_id: str) -> Dict[str, Any]:
    """Monthly fee 500, admission fee 1000."""
    return db.seed(
        "class_fees",
        class_id=class_id,
        course_type="monthly",
        admission_fee="1000.00",
        monthly_fee="500.00",
        yearly_fee=None,
    )


@pytest.fixture
def yearly_schedule(db: InMemoryQueries, class_id: str) -> Dict[str, Any]:
    return db.seed(
        "class_fees",
        class_id=class_id,
        course_type="yearly",
        admission_fee="1000.00",
        monthly_fee=None,
        yearly_fee="5000.00",
    )


@pytest.fixture
def so_center(db: InMemoryQueries) -> Dict[str, Any]:
    return db.seed("so_centers", id="center-1", name="Kukatpally SO Center", wallet_balance="0.00")


@pytest.fixture
def add_student(db: InMemoryQueries, class_id: str):
    """Factory for active student rows."""

    def _add(student_id: str, pending: str = "0.00", total: Optional[str] = None, paid: str = "0.00",
             course_type: str = "monthly", student_class: Optional[str] = None,
             enrollment_date: str = "2025-01-05", is_active: bool = True) -> Dict[str, Any]:
        return db.seed(
            "students",
            id=student_id,
            name=f"Student {student_id}",
            student_code=f"SO-{student_id}",
            so_center_id="center-1",
            class_id=student_class or class_id,
            course_type=course_type,
            enrollment_date=enrollment_date,
            admission_fee_paid=False,
            total_fee_amount=total if total is not None else pending,
            paid_amount=paid,
            pending_amount=pending,
            payment_status="pending",
            is_active=is_active,
        )

    return _add


@pytest.fixture
def march_clock():
    return fixed_clock(date(2025, 3, 1))
