from __future__ import annotations

import json
import logging
from typing import Optional, Sequence

from langchain_core.exceptions import OutputParserException
from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import ChatPromptTemplate

from agent.core.prompt import FILTER_EXTRACTION_PROMPT
from agent.core.types import FilterSpec
from agent.filters.fuzzy import DEFAULT_THRESHOLD, fuzzy_match
from agent.gateway import ModelGateway, content_text


logger = logging.getLogger(__name__)

_parser = PydanticOutputParser(pydantic_object=FilterSpec)
_prompt = ChatPromptTemplate.from_messages([("human", FILTER_EXTRACTION_PROMPT)])


def _strip_code_fences(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped[3:]
        if stripped.startswith("json"):
            stripped = stripped[len("json"):].lstrip()
        stripped = stripped.rstrip()
        if stripped.endswith("```"):
            stripped = stripped[:-3]
    return stripped.strip()


def _extract_json_segment(text: str) -> Optional[str]:
    start = text.find("{")
    if start == -1:
        return None
    stack = 0
    for idx in range(start, len(text)):
        ch = text[idx]
        if ch == "{":
            stack += 1
        elif ch == "}":
            stack -= 1
            if stack == 0:
                return text[start: idx + 1]
    return None


def parse_filter_output(text: str) -> FilterSpec:
    """Parse the model's JSON reply; raises OutputParserException when unusable."""
    cleaned = _strip_code_fences(text)
    segment = _extract_json_segment(cleaned)
    return _parser.parse(segment or cleaned)


def normalize_vocabulary(
    spec: FilterSpec,
    roles: Sequence[str],
    departments: Sequence[str],
    threshold: float = DEFAULT_THRESHOLD,
) -> FilterSpec:
    updates = {}
    if spec.role:
        updates["role"] = [fuzzy_match(value, roles, threshold) for value in spec.role]
    if spec.department:
        updates["department"] = [
            fuzzy_match(value, departments, threshold) for value in spec.department
        ]
    if not updates:
        return spec
    data = spec.model_dump(by_alias=True, exclude_none=True)
    data.update(updates)
    return FilterSpec.model_validate(data)


async def extract_filters_with_model(
    gateway: ModelGateway,
    message: str,
    roles: Sequence[str],
    departments: Sequence[str],
    current_filters: Optional[FilterSpec] = None,
    threshold: float = DEFAULT_THRESHOLD,
) -> Optional[FilterSpec]:
    """Ask the model for filters. Returns None when nothing usable came back."""
    prompt_messages = _prompt.format_messages(
        roles=", ".join(roles),
        departments=", ".join(departments),
        current_filters=json.dumps(current_filters.criteria() if current_filters else {}),
        message=message,
        format_instructions=_parser.get_format_instructions(),
    )
    raw = await gateway.complete(prompt_messages)
    try:
        parsed = parse_filter_output(raw)
    except OutputParserException as exc:
        logger.warning("Filter extraction returned unparseable output: %s", exc)
        return None

    if parsed.unrelated:
        return FilterSpec(unrelated=True)
    if parsed.is_empty():
        # "clear all filters" comes back as a bare reset
        return FilterSpec(should_reset=True) if parsed.should_reset else None
    return normalize_vocabulary(parsed, roles, departments, threshold)
