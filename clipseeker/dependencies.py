from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

import httpx

from clipseeker.config import AppSettings, load_settings
from clipseeker.progress import ProgressSink, StructuredLogProgressSink
from clipseeker.repositories.database import Database
from clipseeker.repositories.video_repository import VideoRepository, VideoStore
from clipseeker.services.caption_parser import CaptionParser
from clipseeker.services.channel_collector import ChannelVideoCollector
from clipseeker.services.import_service import ImportService
from clipseeker.services.rate_limiter import SlidingWindowRateLimiter
from clipseeker.services.relay_fetcher import RelayFetcher, build_relays
from clipseeker.services.search_matcher import SearchMatcher
from clipseeker.services.transcript_extractor import (
    TranscriptExtractor,
    build_default_strategies,
)
from clipseeker.services.video_metadata import VideoMetadataService


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_video_repository() -> VideoRepository:
    return _open_repository(get_settings())


def _open_repository(settings: AppSettings) -> VideoRepository:
    database = Database(settings.db_path)
    database.initialize()
    return VideoRepository(database)


@lru_cache(maxsize=1)
def get_rate_limiter() -> SlidingWindowRateLimiter:
    settings = get_settings()
    return SlidingWindowRateLimiter(
        max_requests=1,
        window_seconds=settings.add_cooldown_seconds,
    )


def get_search_matcher() -> SearchMatcher:
    return SearchMatcher(context_chars=get_settings().search_context_chars)


def build_page_fetcher(client: httpx.AsyncClient, settings: AppSettings) -> RelayFetcher:
    return RelayFetcher(
        client,
        build_relays(settings.relay_prefixes),
        timeout_seconds=settings.relay_timeout_seconds,
        min_body_length=settings.relay_min_body_length,
        headers={"User-Agent": settings.user_agent},
    )


def build_api_fetcher(client: httpx.AsyncClient, settings: AppSettings) -> RelayFetcher:
    return RelayFetcher(
        client,
        build_relays(settings.relay_prefixes, direct_first=True),
        timeout_seconds=settings.relay_timeout_seconds,
        min_body_length=settings.relay_min_body_length,
        headers={"User-Agent": settings.user_agent},
    )


def build_transcript_extractor(
    client: httpx.AsyncClient,
    settings: AppSettings,
) -> TranscriptExtractor:
    fetcher = build_page_fetcher(client, settings)
    parser = CaptionParser(fallback_duration_seconds=settings.caption_fallback_duration_seconds)
    return TranscriptExtractor(
        fetcher,
        build_default_strategies(fetcher, parser, languages=settings.caption_languages),
        page_min_length=settings.page_min_body_length,
    )


def build_channel_collector(
    client: httpx.AsyncClient,
    settings: AppSettings,
) -> ChannelVideoCollector:
    return ChannelVideoCollector(
        build_page_fetcher(client, settings),
        build_api_fetcher(client, settings),
        max_batches=settings.channel_max_batches,
        batch_delay_seconds=settings.channel_batch_delay_seconds,
        client_version=settings.innertube_client_version,
        page_min_length=settings.page_min_body_length,
    )


def build_import_service(
    client: httpx.AsyncClient,
    *,
    settings: AppSettings | None = None,
    store: VideoStore | None = None,
    rate_limiter: SlidingWindowRateLimiter | None = None,
    progress_sink: ProgressSink | None = None,
) -> ImportService:
    resolved_settings = settings or get_settings()
    if store is None:
        store = get_video_repository() if settings is None else _open_repository(settings)
    return ImportService(
        store=store,
        extractor=build_transcript_extractor(client, resolved_settings),
        collector=build_channel_collector(client, resolved_settings),
        metadata=VideoMetadataService(build_api_fetcher(client, resolved_settings)),
        rate_limiter=rate_limiter or get_rate_limiter(),
        progress_sink=progress_sink or StructuredLogProgressSink(),
    )


@asynccontextmanager
async def open_import_service(
    *,
    settings: AppSettings | None = None,
    progress_sink: ProgressSink | None = None,
) -> AsyncIterator[ImportService]:
    async with httpx.AsyncClient(follow_redirects=True) as client:
        yield build_import_service(client, settings=settings, progress_sink=progress_sink)


def reset_cached_dependencies() -> None:
    get_settings.cache_clear()
    get_video_repository.cache_clear()
    get_rate_limiter.cache_clear()
