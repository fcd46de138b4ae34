from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Union

from agent.core.types import Ambiguous, NotFound
from agent.store import UserRecord, UserStore


@dataclass(frozen=True)
class Resolved:
    record: UserRecord


Resolution = Union[Resolved, Ambiguous, NotFound]


async def find_candidates(
    store: UserStore, name_query: Optional[str] = None, email: Optional[str] = None
) -> List[UserRecord]:
    email = (email or "").strip().lower()
    if email:
        matches = await store.find(lambda record: record.email.lower() == email)
    else:
        needle = (name_query or "").strip().lower()
        if not needle:
            return []
        matches = await store.find(lambda record: needle in record.name.lower())
    return sorted(matches, key=lambda record: (record.name.lower(), record.email))


async def resolve_user(
    store: UserStore, name_query: Optional[str] = None, email: Optional[str] = None
) -> Resolution:
    """Narrow a loose reference down to exactly one record.

    An email wins over the name and is matched exactly; a name is matched as
    a case-insensitive substring. Several matches are reported, never guessed.
    """
    matches = await find_candidates(store, name_query, email)
    if not matches:
        query = (email or "").strip() or f'"{(name_query or "").strip()}"'
        return NotFound(query=query)
    if len(matches) > 1:
        return Ambiguous(candidates=tuple((record.name, record.email) for record in matches))
    return Resolved(record=matches[0])
