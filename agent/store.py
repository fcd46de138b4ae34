from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field


USER_FIELDS = ("name", "email", "phone", "age", "address", "role", "department")


class StoreValidationError(ValueError):
    """A write was rejected by a field constraint."""


class DuplicateEmailError(StoreValidationError):
    pass


class UserRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    email: str
    phone: Optional[str] = None
    age: Optional[int] = None
    address: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


Predicate = Callable[[UserRecord], bool]


class UserStore(Protocol):
    async def find(self, predicate: Predicate) -> List[UserRecord]: ...

    async def insert(self, fields: Dict[str, Any]) -> UserRecord: ...

    async def update_by_id(self, record_id: str, fields: Dict[str, Any]) -> UserRecord: ...

    async def delete_by_id(self, record_id: str) -> None: ...

    async def distinct_values(self, field: str) -> List[str]: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Trim strings, lower-case email, drop unknown keys and blank optionals."""
    cleaned: Dict[str, Any] = {}
    for key in USER_FIELDS:
        if key not in fields:
            continue
        value = fields[key]
        if isinstance(value, str):
            value = value.strip()
            if key == "email":
                value = value.lower()
        if key == "age" and value not in (None, ""):
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise StoreValidationError("Age must be a number")
            if value < 0:
                raise StoreValidationError("Age must be a positive number")
        if value in (None, "") and key not in ("name", "email"):
            value = None
        cleaned[key] = value
    return cleaned


class InMemoryUserStore:
    """Process-local store honouring the same constraints as the database schema."""

    def __init__(self, records: Optional[Iterable[Dict[str, Any]]] = None) -> None:
        self._records: Dict[str, UserRecord] = {}
        self._lock = asyncio.Lock()
        for fields in records or []:
            record = self._build(normalize_fields(fields))
            self._records[record.id] = record

    def _check_required(self, fields: Dict[str, Any]) -> None:
        if not fields.get("name"):
            raise StoreValidationError("Name is required")
        if not fields.get("email"):
            raise StoreValidationError("Email is required")

    def _check_unique_email(self, email: str, exclude_id: Optional[str] = None) -> None:
        for record in self._records.values():
            if record.id != exclude_id and record.email == email:
                raise DuplicateEmailError(f"Email {email} already exists")

    def _build(self, fields: Dict[str, Any]) -> UserRecord:
        self._check_required(fields)
        self._check_unique_email(fields["email"])
        now = _now()
        return UserRecord(id=uuid.uuid4().hex, created_at=now, updated_at=now, **fields)

    async def find(self, predicate: Predicate) -> List[UserRecord]:
        return [record for record in self._records.values() if predicate(record)]

    async def get(self, record_id: str) -> Optional[UserRecord]:
        return self._records.get(record_id)

    async def insert(self, fields: Dict[str, Any]) -> UserRecord:
        async with self._lock:
            record = self._build(normalize_fields(fields))
            self._records[record.id] = record
            return record

    async def update_by_id(self, record_id: str, fields: Dict[str, Any]) -> UserRecord:
        async with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise KeyError(record_id)
            changes = normalize_fields(fields)
            merged = current.model_dump()
            merged.update(changes)
            self._check_required(merged)
            self._check_unique_email(merged["email"], exclude_id=record_id)
            merged["updated_at"] = _now()
            record = UserRecord(**merged)
            self._records[record_id] = record
            return record

    async def delete_by_id(self, record_id: str) -> None:
        async with self._lock:
            self._records.pop(record_id, None)

    async def distinct_values(self, field: str) -> List[str]:
        values = {getattr(record, field) for record in self._records.values()}
        return sorted(str(value) for value in values if value)
