"""
HTTP API.

JSON endpoints for analysis, user registration, history, stock
leaderboards and channel catalogues. The caller's identity arrives in the
``x-user-email`` header set by the surrounding web layer.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Sequence, Union

from fastapi import FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from yt_stock_ai.config.loader import AppConfig
from yt_stock_ai.core.analysis import AnalysisOrchestrator, utc_now
from yt_stock_ai.core.errors import AnalysisError, Unauthenticated
from yt_stock_ai.services import OpenAIRecommendationExtractor, YouTubeTranscriptAcquirer
from yt_stock_ai.storage.models import Channel
from yt_stock_ai.storage.repository import (
    ChannelRepository,
    RecommendationRepository,
    UserRepository,
    initialize_schema,
)

logger = logging.getLogger(__name__)


class AnalyzeRequest(BaseModel):
    videoUrl: Optional[str] = None
    videoReference: Optional[str] = None


class SaveUserRequest(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None


class AddChannelRequest(BaseModel):
    channelId: Optional[str] = None
    userId: Optional[str] = None
    channelUrl: Optional[str] = None
    title: Optional[str] = None
    thumbnail: Optional[str] = None
    handle: Optional[str] = None
    subscribers: Optional[Union[int, str]] = None


class RemoveChannelRequest(BaseModel):
    channelId: Optional[str] = None
    userId: Optional[str] = None


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    orchestrator: AnalysisOrchestrator,
    users: UserRepository,
    recommendations: RecommendationRepository,
    channels: ChannelRepository,
    cors_origins: Sequence[str] = (),
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    """Build the FastAPI application around already-wired collaborators."""
    app = FastAPI(title="YT Stock AI")

    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(cors_origins),
            allow_credentials="*" not in cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(AnalysisError)
    async def analysis_error_handler(_request: Request, exc: AnalysisError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_request: Request, exc: RequestValidationError):
        return error_response(400, "Invalid request body")

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return error_response(500, "Internal server error")

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.post("/api/analyze")
    def analyze(payload: AnalyzeRequest, x_user_email: Optional[str] = Header(default=None)):
        reference = payload.videoUrl or payload.videoReference
        if not reference:
            return error_response(400, "No video URL provided")
        recommendation_set = orchestrator.analyze(reference, x_user_email)
        return recommendation_set.to_dict()

    @app.post("/api/users")
    def save_user(payload: SaveUserRequest):
        if not payload.email or not payload.name:
            return error_response(400, "Invalid user data")
        user = users.create_if_absent(payload.email, payload.name, payload.image, clock())
        return {"success": True, "user": user.to_dict()}

    @app.get("/api/analysis-history")
    def analysis_history(x_user_email: Optional[str] = Header(default=None)):
        if not x_user_email:
            raise Unauthenticated("User not authenticated")
        history = recommendations.analysis_history(x_user_email)
        return {"videos": [entry.to_dict() for entry in history]}

    @app.get("/api/stocks/top")
    def top_stocks(limit: int = Query(10, ge=1, le=50)):
        return {"stocks": recommendations.top_stocks(limit)}

    @app.get("/api/stocks/{ticker}/videos")
    def videos_by_stock(ticker: str):
        stock = ticker.strip()
        if not stock:
            return error_response(400, "Stock name or ticker is required")
        return {"videos": recommendations.videos_by_ticker(stock)}

    @app.post("/api/channels")
    def add_channel(payload: AddChannelRequest):
        if not payload.channelId or not payload.userId:
            return error_response(400, "Missing required fields")
        channel = channels.add(
            Channel(
                channel_id=payload.channelId,
                user_id=payload.userId,
                url=payload.channelUrl,
                title=payload.title,
                thumbnail=payload.thumbnail,
                handle=payload.handle,
                subscribers=None if payload.subscribers is None else str(payload.subscribers),
            ),
            clock(),
        )
        return {"channel": channel.to_dict()}

    @app.delete("/api/channels")
    def remove_channel(payload: RemoveChannelRequest):
        if not payload.channelId or not payload.userId:
            return error_response(400, "Missing required fields")
        channels.remove(payload.channelId, payload.userId)
        return {"success": True}

    @app.get("/api/channels")
    def list_channels(userId: Optional[str] = None):
        if not userId:
            return error_response(400, "User ID is required")
        return {"channels": [channel.to_dict() for channel in channels.list_for_user(userId)]}

    @app.get("/api/channels/top")
    def top_channels(limit: int = Query(10, ge=1, le=50)):
        return {"channels": channels.top_channels(limit)}

    return app


def build_app(config: AppConfig) -> FastAPI:
    """Wire storage and external services from configuration."""
    db_path = config.database.path
    initialize_schema(db_path)

    users = UserRepository(db_path)
    recommendations = RecommendationRepository(db_path)
    orchestrator = AnalysisOrchestrator(
        users=users,
        recommendations=recommendations,
        transcripts=YouTubeTranscriptAcquirer(languages=config.transcripts.languages),
        extractor=OpenAIRecommendationExtractor(
            model=config.extraction.model,
            temperature=config.extraction.temperature,
        ),
    )
    return create_app(
        orchestrator=orchestrator,
        users=users,
        recommendations=recommendations,
        channels=ChannelRepository(db_path),
        cors_origins=config.server.cors_origins,
    )
