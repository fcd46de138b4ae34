from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from agent.core.types import SORT_FIELDS, FilterSpec
from agent.filters.fuzzy import DEFAULT_THRESHOLD, fuzzy_match


# Age rules are tried in this order; the first hit wins.
_MAX_AGE = re.compile(r"\bmax(?:imum)?\s*(?:age)?\s*(?:is|of|:)?\s*(\d+)", re.I)
_AGE_RANGE = re.compile(r"\bage\s*(?:between|from)?\s*(\d+)\s*(?:and|to|-)\s*(\d+)", re.I)
_MIN_AGE = re.compile(r"\bmin(?:imum)?\s*(?:age)?\s*(?:is|of|:)?\s*(\d+)", re.I)
_EXACT_AGE = re.compile(r"\bage\s*(?:is|of|:)?\s*(\d+)", re.I)

COMMON_ROLE_PATTERNS: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("Developer", re.compile(r"\b(?:developers?|devs?)\b", re.I)),
    ("Manager", re.compile(r"\b(?:managers?|leads?)\b", re.I)),
    ("Designer", re.compile(r"\b(?:designers?|ux|ui)\b", re.I)),
    ("Engineer", re.compile(r"\b(?:engineers?|eng)\b", re.I)),
    ("Admin", re.compile(r"\b(?:admins?|administrators?)\b", re.I)),
    ("Analyst", re.compile(r"\b(?:analysts?)\b", re.I)),
    ("Director", re.compile(r"\b(?:directors?|vp|head)\b", re.I)),
    ("Owner", re.compile(r"\b(?:owners?|founders?|ceo)\b", re.I)),
)

_PHONE_PATTERNS = (
    re.compile(r"(?:phone|number|mobile|cell)\s*(?:number|is|:)?\s*([+\d\s\-()]+)", re.I),
    re.compile(
        r"(?:with\s+phone|phone\s+starts?\s+with|phone\s+number|phone\s+contains?|phone\s+has)"
        r"\s+([+\d\s\-()]+)",
        re.I,
    ),
    re.compile(
        r"(?:filter|find|show|get|list|search)\s+(?:users?\s+)?(?:with\s+)?phone\s+([+\d\s\-()]+)",
        re.I,
    ),
    re.compile(
        r"(?:filter|find|show|get|list|search)\s+(?:users?\s+)?phone\s+"
        r"(?:starts?\s+with|contains?|is|:)\s*([+\d\s\-()]+)",
        re.I,
    ),
    re.compile(r"(?:filter|phone)\s+(?:with|is|:)?\s*([+\d\s\-()]+)", re.I),
)
_STANDALONE_PHONE = re.compile(r"(?<![\w+])(\+?\d{5,})\b")
_PHONE_CONTEXT = re.compile(r"(?:phone|number|mobile|cell|filter|880|8801|88015)", re.I)

_VERB = r"(?:find|show|get|list|search)\s+(?:users?\s+)?"
_END = r"(?:\s+with|\s+in|\s+that|$)"
_NAMED = re.compile(_VERB + r"(?:named|with\s+name|called)\s+(.+?)" + _END, re.I)
_EMAIL = re.compile(_VERB + r"(?:with\s+email|email)\s+(.+?)" + _END, re.I)
_GENERIC = re.compile(
    _VERB + r"(?!that\b|who\b|whose\b|where\b|roles?\b|departments?\b)(.+?)" + _END, re.I
)
_STRUCTURAL_WORDS = re.compile(
    r"\b(?:roles?|departments?|depts?|job|position|is|are|and|or|that|which|whose|where|users?)\b",
    re.I,
)

_SORT_PATTERNS = (
    re.compile(
        r"(?:sort(?:ed)?|order(?:ed)?|arranged?)\s+(?:by|according\s+to|with)\s+([a-z]+)"
        r"\s*(asc|desc|ascending|descending)?",
        re.I,
    ),
    re.compile(
        r"(?:show|list)\s+users?\s+(?:sorted|ordered)\s+(?:by|according\s+to|with)\s+([a-z]+)"
        r"\s*(asc|desc|ascending|descending)?",
        re.I,
    ),
)
_SORT_FIELD_ALIASES = {field.lower(): field for field in SORT_FIELDS}
_SORT_FIELD_ALIASES.update({"created": "createdAt", "date": "createdAt"})

_ADDITIVE = re.compile(r"\b(?:also|too|as\s+well|include|including|additionally|plus)\b", re.I)
_RESET = re.compile(r"\b(?:clear|reset|start\s+over|remove\s+(?:all\s+)?filters?)\b", re.I)
_DOMAIN_TERMS = re.compile(
    r"\b(?:users?|people|persons?|members?|employees?|staff|records?|profiles?|accounts?|"
    r"roles?|departments?|depts?|emails?|phones?|numbers?|ages?|named|called|"
    r"find|show|list|get|search|filter|sort|order|create|add|update|change|edit|"
    r"delete|remove|clear|reset|who|whose)\b",
    re.I,
)


def _extract_age(query: str, filters: Dict[str, Any]) -> None:
    match = _MAX_AGE.search(query)
    if match:
        filters["maxAge"] = match.group(1)
        return
    match = _AGE_RANGE.search(query)
    if match:
        filters["minAge"], filters["maxAge"] = match.group(1), match.group(2)
        return
    match = _MIN_AGE.search(query)
    if match:
        filters["minAge"] = match.group(1)
        return
    match = _EXACT_AGE.search(query)
    if match:
        filters["minAge"] = filters["maxAge"] = match.group(1)


def _vocabulary_pattern(value: str) -> "re.Pattern[str]":
    return re.compile(r"\b" + re.escape(value) + r"(?:s|es)?\b", re.I)


def _scan_vocabulary(query: str, vocabulary: Sequence[str], found: List[str]) -> None:
    for value in vocabulary:
        if value and value not in found and _vocabulary_pattern(value).search(query):
            found.append(value)


def _extract_phone(query: str) -> Optional[str]:
    for pattern in _PHONE_PATTERNS:
        match = pattern.search(query)
        if match:
            phone = re.sub(r"\s+", "", match.group(1).strip())
            if len(phone) >= 3:
                return phone
    match = _STANDALONE_PHONE.search(query)
    if match and _PHONE_CONTEXT.search(query):
        return match.group(1)
    return None


def _extract_name_or_email(
    query: str, roles: List[str], departments: List[str], filters: Dict[str, Any]
) -> None:
    for index, pattern in enumerate((_NAMED, _EMAIL, _GENERIC)):
        match = pattern.search(query)
        if not match:
            continue
        term = re.sub(r"[.,;]$", "", match.group(1).strip())
        lowered = term.lower()
        if any(value.lower() == lowered for value in roles + departments):
            break
        if "@" in term:
            filters["email"] = term
            break
        if pattern is _GENERIC:
            # Descriptive remainder ("devs that ...") is not a name; require "named X" then.
            if roles or departments or filters.get("phone") or filters.get("email"):
                continue
            if _STRUCTURAL_WORDS.search(term):
                continue
        filters["name"] = term
        break


def _extract_sort(query: str, filters: Dict[str, Any]) -> None:
    for pattern in _SORT_PATTERNS:
        match = pattern.search(query)
        if not match:
            continue
        field = _SORT_FIELD_ALIASES.get(match.group(1).lower())
        if field is None:
            continue
        direction = match.group(2)
        if direction:
            order = "desc" if direction.lower().startswith("desc") else "asc"
        else:
            order = "desc" if field in ("createdAt", "age") else "asc"
        filters["sortBy"], filters["sortOrder"] = field, order
        return

    lowered = query.lower()
    if "newest" in lowered or "latest" in lowered:
        filters["sortBy"], filters["sortOrder"] = "createdAt", "desc"
    elif "oldest" in lowered:
        filters["sortBy"], filters["sortOrder"] = "createdAt", "asc"
    elif "youngest" in lowered:
        filters["sortBy"], filters["sortOrder"] = "age", "asc"


def extract_filters(
    query: str,
    roles: Sequence[str] = (),
    departments: Sequence[str] = (),
    threshold: float = DEFAULT_THRESHOLD,
) -> FilterSpec:
    """Parse a free-text query into list-view filters without calling a model.

    ``roles`` and ``departments`` are the values currently stored; synonyms
    such as "devs" are mapped onto them with :func:`fuzzy_match`.
    """
    filters: Dict[str, Any] = {}
    query = query or ""

    _extract_age(query, filters)

    found_roles: List[str] = []
    for keyword, pattern in COMMON_ROLE_PATTERNS:
        if pattern.search(query):
            role = fuzzy_match(keyword, roles, threshold)
            if role not in found_roles:
                found_roles.append(role)
    _scan_vocabulary(query, roles, found_roles)

    found_departments: List[str] = []
    _scan_vocabulary(query, departments, found_departments)

    if found_roles:
        filters["role"] = found_roles
    if found_departments:
        filters["department"] = found_departments

    phone = _extract_phone(query)
    if phone:
        filters["phone"] = phone

    _extract_name_or_email(query, found_roles, found_departments, filters)
    _extract_sort(query, filters)

    return FilterSpec.model_validate(filters)


def looks_unrelated(query: str, extracted: FilterSpec) -> bool:
    """True for chatter with no directory vocabulary ("tell me a joke")."""
    return extracted.is_empty() and not _DOMAIN_TERMS.search(query or "")


def lexical_turn_filters(
    query: str,
    roles: Sequence[str],
    departments: Sequence[str],
    threshold: float = DEFAULT_THRESHOLD,
) -> FilterSpec:
    """Lexical extraction plus the reset/off-topic flags the orchestrator needs."""
    extracted = extract_filters(query, roles, departments, threshold)
    if looks_unrelated(query, extracted):
        return FilterSpec(unrelated=True)
    if extracted.is_empty():
        if _RESET.search(query):
            return FilterSpec(should_reset=True)
        return extracted
    should_reset = not _ADDITIVE.search(query)
    return extracted.model_copy(update={"should_reset": should_reset})
