from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


SORT_FIELDS = ("name", "email", "age", "role", "department", "createdAt")

SortField = Literal["name", "email", "age", "role", "department", "createdAt"]
SortOrder = Literal["asc", "desc"]


def _dedupe(values: Optional[List[str]]) -> Optional[List[str]]:
    if values is None:
        return None
    seen: List[str] = []
    for value in values:
        value = (value or "").strip()
        if value and value not in seen:
            seen.append(value)
    return seen or None


class FilterSpec(BaseModel):
    """Filter criteria for the user list view, produced once per turn."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: Optional[str] = Field(None, description="User's full name")
    email: Optional[str] = Field(None, description="User's email address")
    phone: Optional[str] = Field(None, description="User's phone number")
    role: Optional[List[str]] = Field(None, description="List of user roles to filter by")
    department: Optional[List[str]] = Field(
        None, description="List of departments to filter by"
    )
    min_age: Optional[str] = Field(None, alias="minAge", description="Minimum age (as string)")
    max_age: Optional[str] = Field(None, alias="maxAge", description="Maximum age (as string)")
    sort_by: Optional[SortField] = Field(None, alias="sortBy", description="Field to sort by")
    sort_order: Optional[SortOrder] = Field(None, alias="sortOrder", description="Sort direction")
    should_reset: Optional[bool] = Field(
        None,
        alias="shouldReset",
        description=(
            "Whether to clear existing filters before applying these (use if the new "
            "request conflicts with or replaces the current context)"
        ),
    )
    unrelated: Optional[bool] = Field(
        None,
        description="Set to true if the message is off-topic or unrelated to user management",
    )

    @field_validator("role", "department", mode="before")
    @classmethod
    def _coerce_set(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [part for part in value.split(",")]
        if isinstance(value, (list, tuple, set)):
            return _dedupe([str(v) for v in value])
        return value

    @field_validator("min_age", "max_age", mode="before")
    @classmethod
    def _coerce_age(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            raise ValueError("age bound must be a number")
        if isinstance(value, (int, float)):
            return str(int(value))
        return str(value).strip()

    def criteria(self) -> Dict[str, Any]:
        """Wire form of the filter fields only (flags excluded)."""
        return self.model_dump(
            by_alias=True, exclude_none=True, exclude={"should_reset", "unrelated"}
        )

    def is_empty(self) -> bool:
        return not self.criteria()


EMPTY_FILTERS = FilterSpec()


def merge_filters(current: Optional[FilterSpec], update: FilterSpec) -> FilterSpec:
    """Apply a turn's filters onto the caller's applied state."""
    if current is None or update.should_reset:
        return FilterSpec.model_validate(update.criteria())
    merged = current.criteria()
    for key, value in update.criteria().items():
        if key in ("role", "department"):
            merged[key] = list(merged.get(key) or []) + list(value)
        else:
            merged[key] = value
    return FilterSpec.model_validate(merged)


# ---------------------------------------------------------------------------
# Tool invocations emitted by the model
# ---------------------------------------------------------------------------


class UserFields(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    age: Optional[int] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class CreateUserInput(UserFields):
    name: str = Field(..., description="Full name of the new user")
    email: str = Field(..., description="Email address (unique)")


class UpdateUserInput(BaseModel):
    name_query: str = Field("", description="Full or partial name of the user to update")
    email: Optional[str] = Field(
        None,
        description="Optional email for exact identification if multiple users have the same name.",
    )
    updates: UserFields = Field(..., description="Fields to change")


class DeleteUserInput(BaseModel):
    name_query: str = Field("", description="Full or partial name of the user to delete")
    email: Optional[str] = Field(
        None,
        description="Optional email for exact identification if multiple users have the same name.",
    )


@dataclass(frozen=True)
class CreateUser:
    call_id: str
    arguments: CreateUserInput
    name: str = "create_user"


@dataclass(frozen=True)
class UpdateUser:
    call_id: str
    arguments: UpdateUserInput
    name: str = "update_user"


@dataclass(frozen=True)
class DeleteUser:
    call_id: str
    arguments: DeleteUserInput
    name: str = "delete_user"


ToolInvocation = Union[CreateUser, UpdateUser, DeleteUser]

_INVOCATIONS = {
    "create_user": (CreateUser, CreateUserInput),
    "update_user": (UpdateUser, UpdateUserInput),
    "delete_user": (DeleteUser, DeleteUserInput),
}


class InvalidToolCall(ValueError):
    def __init__(self, call_id: str, name: str, reason: str) -> None:
        super().__init__(reason)
        self.call_id = call_id
        self.name = name
        self.reason = reason


def parse_tool_call(call: Dict[str, Any]) -> ToolInvocation:
    """Turn a LangChain tool-call dict into a typed invocation."""
    name = call.get("name") or ""
    call_id = call.get("id") or name
    if name not in _INVOCATIONS:
        raise InvalidToolCall(call_id, name, f"Unknown tool {name!r}")
    variant, schema = _INVOCATIONS[name]
    try:
        arguments = schema.model_validate(call.get("args") or {})
    except ValidationError as exc:
        raise InvalidToolCall(call_id, name, f"Invalid arguments for {name}: {exc}") from exc
    return variant(call_id=call_id, arguments=arguments)


# ---------------------------------------------------------------------------
# Tool outcomes fed back to the model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Success:
    subject_name: str
    message: str = ""

    def render(self) -> str:
        return f"Success: {self.message or self.subject_name}"


@dataclass(frozen=True)
class NotFound:
    query: str

    def render(self) -> str:
        return f"Error: No user found matching {self.query}."


@dataclass(frozen=True)
class Ambiguous:
    candidates: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def candidate_names(self) -> List[str]:
        return [name for name, _ in self.candidates]

    def render(self) -> str:
        listed = ", ".join(f"{name} ({email})" for name, email in self.candidates)
        return f"Error: Multiple users found: {listed}. Please provide an email for precision."


@dataclass(frozen=True)
class Failure:
    reason: str

    def render(self) -> str:
        return f"Error: {self.reason}"


ToolOutcome = Union[Success, NotFound, Ambiguous, Failure]


@dataclass
class TurnResult:
    response: str
    filters: FilterSpec = EMPTY_FILTERS
    refresh: bool = False
    should_reset: bool = False
    unrelated: bool = False
    outcomes: List[ToolOutcome] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "filters": self.filters.criteria(),
            "refresh": self.refresh,
            "shouldReset": self.should_reset,
            "unrelated": self.unrelated,
        }
