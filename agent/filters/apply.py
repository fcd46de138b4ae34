from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from agent.core.types import FilterSpec
from agent.store import Predicate, UserRecord


def _contains(value: Optional[str], needle: Optional[str]) -> bool:
    if not needle:
        return True
    return needle.lower() in (value or "").lower()


def _age_bound(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except ValueError:
        return None


def filter_predicate(spec: FilterSpec) -> Predicate:
    """Predicate for the list view: substring text fields, set membership, inclusive ages."""
    roles = set(spec.role or [])
    departments = set(spec.department or [])
    min_age = _age_bound(spec.min_age)
    max_age = _age_bound(spec.max_age)

    def predicate(record: UserRecord) -> bool:
        if not (
            _contains(record.name, spec.name)
            and _contains(record.email, spec.email)
            and _contains(record.phone, spec.phone)
        ):
            return False
        if roles and record.role not in roles:
            return False
        if departments and record.department not in departments:
            return False
        if min_age is not None or max_age is not None:
            if record.age is None:
                return False
            if min_age is not None and record.age < min_age:
                return False
            if max_age is not None and record.age > max_age:
                return False
        return True

    return predicate


_ATTRIBUTES = {"createdAt": "created_at"}
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def sort_records(records: List[UserRecord], spec: FilterSpec) -> List[UserRecord]:
    field = spec.sort_by or "createdAt"
    order = spec.sort_order or ("desc" if field in ("createdAt", "age") else "asc")
    attribute = _ATTRIBUTES.get(field, field)

    def key(record: UserRecord) -> Any:
        value = getattr(record, attribute)
        if isinstance(value, str):
            return (False, value.lower())
        if value is None:
            # Missing values sort last in ascending order
            return (True, _EPOCH if attribute == "created_at" else 0)
        return (False, value)

    return sorted(records, key=key, reverse=(order == "desc"))
