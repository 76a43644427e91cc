"""FastAPI app with health, search, favorites summary and assistant endpoints.

Every error leaves the service as `{"error": "<message>"}`.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from assist.gateway import ChatGateway, get_gateway
from .config import settings
from .errors import InvalidInputError, PortalError
from .logging_config import setup_logging
from .pipelines.assistant import patient_assistant_reply, researcher_assistant_reply
from .pipelines.favorites import summarize_favorites
from .pipelines.search import run_search
from .store import PortalStore, get_store

logger = logging.getLogger(__name__)


# Pydantic request/response models
class CamelModel(BaseModel):
    """Accepts both camelCase (client) and snake_case field names."""
    model_config = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ErrorResponse(BaseModel):
    """Error response."""
    error: str


class SearchRequest(CamelModel):
    """Relevance search request."""
    query: str | None = None
    condition: str | None = None
    user_type: str | None = Field(default=None, alias="userType")
    location: str | None = None
    filters: dict[str, Any] | None = None


class SearchResponse(BaseModel):
    """Enriched results per collection, sorted by matchScore descending."""
    trials: list[dict[str, Any]] = Field(default_factory=list)
    researchers: list[dict[str, Any]] = Field(default_factory=list)
    questions: list[dict[str, Any]] = Field(default_factory=list)
    publications: list[dict[str, Any]] = Field(default_factory=list)


class FavoritesSummaryRequest(CamelModel):
    """Favorites summary request."""
    user_id: str | None = Field(default=None, alias="userId")


class FavoriteCountsDTO(BaseModel):
    """Number of favorites of each kind included in the summary."""
    trials: int = 0
    researchers: int = 0
    publications: int = 0


class FavoritesSummaryResponse(BaseModel):
    """Favorites summary response."""
    summary: str
    counts: FavoriteCountsDTO


class ChatMessageDTO(BaseModel):
    """One prior turn of an assistant conversation."""
    role: str
    content: str


class AssistantRequest(CamelModel):
    """Assistant chat request."""
    message: str | None = None
    conversation_history: list[ChatMessageDTO] = Field(default_factory=list, alias="conversationHistory")
    user_id: str | None = Field(default=None, alias="userId")


class AssistantResponse(BaseModel):
    """Assistant reply plus context preview."""
    message: str
    context: dict[str, list[dict[str, Any]]]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info("Application starting up")

    yield

    # Shutdown
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="AI-assisted search, summaries and assistants for patients and researchers",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.allow_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=settings.cors.allow_headers,
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
    )


# Exception handlers
@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request, exc: InvalidInputError):
    """Handle missing or invalid request input."""
    logger.warning(f"Invalid input: {exc}")
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(PortalError)
async def portal_error_handler(request, exc: PortalError):
    """Handle storage and gateway failures."""
    logger.error(f"{type(exc).__name__}: {exc}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request, exc: RequestValidationError):
    """Handle unreadable or malformed request bodies."""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    logger.warning(f"Request validation failed: {problems}")
    return _error(status.HTTP_400_BAD_REQUEST, f"Invalid request body: {problems}")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request, exc: StarletteHTTPException):
    """Render HTTP errors with the common error body."""
    return _error(exc.status_code, str(exc.detail))


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=settings.version,
    )


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "endpoints": {
            "health": "/health",
            "search": "/search",
            "favorites_summary": "/favorites/summary",
            "patient_assistant": "/assistant/patient",
            "researcher_assistant": "/assistant/researcher",
            "docs": "/docs",
        },
    }


@app.post("/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    store: PortalStore = Depends(get_store),
    gateway: ChatGateway = Depends(get_gateway),
) -> SearchResponse:
    """Score trials, researchers, questions and publications against a query.

    This endpoint:
    1. Fetches all four candidate collections
    2. Asks the scoring oracle for 0-100 relevance scores
    3. Drops items scored below the threshold
    4. Returns each collection sorted by score with matchScore/matchReason
    """
    try:
        results = await run_search(
            store,
            gateway,
            query=request.query,
            condition=request.condition,
            user_type=request.user_type,
            location=request.location,
            filters=request.filters,
        )
        return SearchResponse(**results.as_dict())

    except PortalError:
        # Re-raise to be caught by exception handlers
        raise
    except Exception as e:
        logger.error(f"Unexpected error during search: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {str(e)}",
        )


@app.post("/favorites/summary", response_model=FavoritesSummaryResponse)
async def favorites_summary(
    request: FavoritesSummaryRequest,
    store: PortalStore = Depends(get_store),
    gateway: ChatGateway = Depends(get_gateway),
) -> FavoritesSummaryResponse:
    """Summarize the user's saved items for discussion with their doctor."""
    try:
        result = await summarize_favorites(store, gateway, user_id=request.user_id)
        return FavoritesSummaryResponse(
            summary=result.summary,
            counts=FavoriteCountsDTO(**result.counts),
        )

    except PortalError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error summarizing favorites: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {str(e)}",
        )


@app.post("/assistant/patient", response_model=AssistantResponse)
async def patient_assistant(
    request: AssistantRequest,
    store: PortalStore = Depends(get_store),
    gateway: ChatGateway = Depends(get_gateway),
) -> AssistantResponse:
    """Patient assistant (HealthBot) chat turn."""
    try:
        reply = await patient_assistant_reply(
            store,
            gateway,
            user_id=request.user_id,
            message=request.message,
            history=[m.model_dump() for m in request.conversation_history],
        )
        return AssistantResponse(message=reply.message, context=reply.context)

    except PortalError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error in patient assistant: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {str(e)}",
        )


@app.post("/assistant/researcher", response_model=AssistantResponse)
async def researcher_assistant(
    request: AssistantRequest,
    store: PortalStore = Depends(get_store),
    gateway: ChatGateway = Depends(get_gateway),
) -> AssistantResponse:
    """Researcher assistant (ResearchBot) chat turn."""
    try:
        reply = await researcher_assistant_reply(
            store,
            gateway,
            user_id=request.user_id,
            message=request.message,
            history=[m.model_dump() for m in request.conversation_history],
        )
        return AssistantResponse(message=reply.message, context=reply.context)

    except PortalError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error in researcher assistant: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {str(e)}",
        )
