from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from langchain_core.language_models.chat_models import BaseChatModel
import logging
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agent.agent import build_orchestrator
from agent.core.types import FilterSpec
from agent.filters.apply import filter_predicate, sort_records
from agent.store import DuplicateEmailError, InMemoryUserStore, StoreValidationError, UserStore
from config.settings import ConfigurationError, Settings, get_settings


logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger("directory")

app = FastAPI(title="User Directory Assistant", version="1.0.0")

# CORS: allow local frontend during development
settings = get_settings()
if settings.app_env.lower() in {"dev", "development", "local"}:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@lru_cache(maxsize=1)
def get_store() -> UserStore:
    return InMemoryUserStore()


def get_chat_model() -> Optional[BaseChatModel]:
    """None means the gateway builds the configured Gemini model."""
    return None


class ChatTurn(BaseModel):
    role: str = Field(..., description="'user' or 'assistant'")
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., description="User's latest message")
    history: Optional[List[ChatTurn]] = Field(
        default_factory=list,
        description="Previous turns including both user and assistant messages (client-managed)",
    )
    current_filters: Optional[FilterSpec] = Field(
        None, alias="currentFilters", description="Filters currently applied to the list view"
    )


class UserCreate(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    age: Optional[int] = None
    address: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None


def _prepare_chat(
    req: ChatRequest,
    store: UserStore,
    settings: Settings,
    llm: Optional[BaseChatModel],
):
    if not req.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")
    try:
        orchestrator = build_orchestrator(store, settings, llm=llm)
    except ConfigurationError as exc:
        logger.error("Model configuration missing: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc))

    logger.info(
        "Config: model=%s key_set=%s extraction=%s",
        settings.gemini_model,
        bool(settings.google_api_key),
        settings.filter_extraction,
    )
    logger.info(
        "Incoming chat: history_turns=%s message_len=%s current_filters=%s",
        len(req.history or []),
        len(req.message),
        req.current_filters.criteria() if req.current_filters else {},
    )
    history = [turn.model_dump() for turn in (req.history or [])]
    return orchestrator, history


@app.post("/ai/chat")
async def chat(
    req: ChatRequest,
    store: UserStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    llm: Optional[BaseChatModel] = Depends(get_chat_model),
):
    orchestrator, history = _prepare_chat(req, store, settings, llm)
    return StreamingResponse(
        orchestrator.stream(req.message, history, req.current_filters),
        media_type="text/plain; charset=utf-8",
    )


@app.post("/ai/chat/complete")
async def chat_complete(
    req: ChatRequest,
    store: UserStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    llm: Optional[BaseChatModel] = Depends(get_chat_model),
) -> Dict[str, Any]:
    orchestrator, history = _prepare_chat(req, store, settings, llm)
    try:
        result = await orchestrator.run(req.message, history, req.current_filters)
    except Exception as e:
        logger.exception("Chat processing failed: %s", e)
        return JSONResponse(status_code=500, content={"error": str(e) or "Failed to process request"})

    logger.info(
        "Model responded with %s chars (refresh=%s, outcomes=%s)",
        len(result.response),
        result.refresh,
        [type(outcome).__name__ for outcome in result.outcomes],
    )
    return result.to_payload()


@app.get("/users")
async def list_users(
    name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    role: Optional[str] = None,
    department: Optional[str] = None,
    min_age: Optional[str] = Query(None, alias="minAge"),
    max_age: Optional[str] = Query(None, alias="maxAge"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    store: UserStore = Depends(get_store),
) -> Dict[str, Any]:
    params = {
        "name": name,
        "email": email,
        "phone": phone,
        "role": role,
        "department": department,
        "minAge": min_age,
        "maxAge": max_age,
        "sortBy": sort_by,
        "sortOrder": sort_order,
    }
    try:
        spec = FilterSpec.model_validate({k: v for k, v in params.items() if v not in (None, "")})
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    records = sort_records(await store.find(filter_predicate(spec)), spec)
    return {"users": [record.model_dump(by_alias=True, mode="json") for record in records]}


@app.post("/users", status_code=201)
async def create_user(body: UserCreate, store: UserStore = Depends(get_store)) -> Dict[str, Any]:
    if not body.name.strip() or not body.email.strip():
        raise HTTPException(status_code=400, detail="Name and email are required")
    try:
        record = await store.insert(body.model_dump(exclude_none=True))
    except DuplicateEmailError:
        raise HTTPException(status_code=400, detail="Email already exists")
    except StoreValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"user": record.model_dump(by_alias=True, mode="json")}


@app.get("/health")
def health():
    return {"status": "ok"}
