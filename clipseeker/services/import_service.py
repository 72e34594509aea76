from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from structlog.contextvars import bound_contextvars

from clipseeker.errors import (
    ClipSeekerError,
    ImportRateLimited,
    VideoAlreadyIndexed,
)
from clipseeker.models.records import (
    BatchProgress,
    ChannelRecord,
    ChannelScanResult,
    FailedVideoRecord,
    TranscriptSegment,
    VideoRecord,
)
from clipseeker.progress import ImportProgress, NoOpProgressSink, ProgressSink
from clipseeker.repositories.common import utc_now_iso
from clipseeker.repositories.video_repository import VideoStore
from clipseeker.services.channel_collector import ChannelVideoCollector
from clipseeker.services.rate_limiter import SlidingWindowRateLimiter
from clipseeker.services.transcript_extractor import TranscriptExtractor
from clipseeker.services.video_metadata import VideoInfo, VideoMetadataService
from clipseeker.services.youtube_urls import is_video_id, thumbnail_url

LOGGER = logging.getLogger("clipseeker.imports")

ADD_VIDEO_RATE_KEY = "add_video"


@dataclass(frozen=True)
class ChannelImportResult:
    channel: ChannelRecord
    scan: ChannelScanResult
    success_count: int
    fail_count: int
    skipped_count: int

    @property
    def processed_count(self) -> int:
        return self.success_count + self.fail_count


class ImportService:
    """Turns video ids and channels into indexed records.

    Single-video imports share one cooldown. Channel imports are not gated by it
    and never abort on a per-video failure; each failure becomes a
    ``FailedVideoRecord`` linked to the channel.
    """

    def __init__(
        self,
        *,
        store: VideoStore,
        extractor: TranscriptExtractor,
        collector: ChannelVideoCollector,
        metadata: VideoMetadataService,
        rate_limiter: SlidingWindowRateLimiter,
        progress_sink: ProgressSink | None = None,
        now_iso: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._collector = collector
        self._metadata = metadata
        self._rate_limiter = rate_limiter
        self._progress = progress_sink or NoOpProgressSink()
        self._now_iso = now_iso

    def cooldown_remaining(self) -> int:
        decision = self._rate_limiter.peek(ADD_VIDEO_RATE_KEY)
        return 0 if decision.allowed else decision.retry_after_seconds

    async def import_video(self, video_id: str) -> VideoRecord:
        _require_video_id(video_id)
        self._check_cooldown()
        if self._store.get_video(video_id) is not None:
            raise VideoAlreadyIndexed(video_id)

        self._progress.emit(
            ImportProgress(
                phase="processing",
                current_title="Fetching video...",
                current_id=video_id,
            )
        )
        info = await self._fetch_info(video_id)
        try:
            record = await self._build_record(video_id, info)
        except ClipSeekerError as exc:
            self._record_failure(video_id, exc, info=info)
            self._progress.emit(ImportProgress(phase="done", current_id=video_id, fail_count=1))
            raise

        self._store.add_video(record)
        self._rate_limiter.take(ADD_VIDEO_RATE_KEY)
        self._progress.emit(
            ImportProgress(
                phase="done",
                current_title=record.title,
                current_id=video_id,
                success_count=1,
            )
        )
        LOGGER.info(
            "video imported video_id=%s segments=%s", video_id, len(record.transcript)
        )
        return record

    async def retry_failed_video(self, video_id: str) -> VideoRecord:
        _require_video_id(video_id)
        self._check_cooldown()

        info = await self._fetch_info(video_id)
        try:
            record = await self._build_record(video_id, info)
        except ClipSeekerError as exc:
            self._record_failure(video_id, exc, info=info)
            raise

        if self._store.get_video(video_id) is None:
            self._store.add_video(record)
        else:
            self._store.replace_video(record)
        self._store.clear_failed_video(video_id)
        self._rate_limiter.take(ADD_VIDEO_RATE_KEY)
        LOGGER.info("failed video recovered video_id=%s", video_id)
        return record

    def dismiss_failed_video(self, video_id: str) -> bool:
        return self._store.clear_failed_video(video_id)

    async def import_channel(
        self,
        identifier: str,
        is_handle: bool = False,
        limit: int | None = None,
    ) -> ChannelImportResult:
        scan = await self._collector.collect(
            identifier,
            is_handle,
            on_batch=self._report_batch,
        )
        channel = scan.channel
        self._store.upsert_channel(channel)

        candidate_ids: Sequence[str] = scan.video_ids
        if limit is not None:
            candidate_ids = candidate_ids[: max(0, limit)]

        pending = [
            video_id for video_id in candidate_ids if self._store.get_video(video_id) is None
        ]
        skipped_count = len(candidate_ids) - len(pending)
        LOGGER.info(
            "channel import started channel_id=%s found=%s pending=%s skipped=%s partial=%s",
            channel.id,
            scan.total_found,
            len(pending),
            skipped_count,
            scan.partial_reason,
        )

        progress = ImportProgress(
            phase="processing",
            batch=scan.batches,
            videos_found=scan.total_found,
            skipped_count=skipped_count,
        )
        success_count = 0
        fail_count = 0
        for video_id in pending:
            progress = progress.advance(current_id=video_id, current_title=f"Video {video_id}")
            self._progress.emit(progress)
            info = await self._fetch_info(video_id)
            try:
                record = await self._build_record(video_id, info, channel=channel)
                self._store.add_video(record)
            except ClipSeekerError as exc:
                fail_count += 1
                self._record_failure(video_id, exc, info=info, channel_id=channel.id)
            else:
                success_count += 1
                progress = progress.advance(current_title=record.title)
            progress = progress.advance(success_count=success_count, fail_count=fail_count)
            self._progress.emit(progress)

        self._progress.emit(progress.advance(phase="done", current_id=None, current_title=None))
        LOGGER.info(
            "channel import finished channel_id=%s success=%s failed=%s skipped=%s",
            channel.id,
            success_count,
            fail_count,
            skipped_count,
        )
        return ChannelImportResult(
            channel=channel,
            scan=scan,
            success_count=success_count,
            fail_count=fail_count,
            skipped_count=skipped_count,
        )

    async def _fetch_info(self, video_id: str) -> VideoInfo:
        with bound_contextvars(video_id=video_id):
            return await self._metadata.fetch(video_id)

    async def _build_record(
        self,
        video_id: str,
        info: VideoInfo,
        *,
        channel: ChannelRecord | None = None,
    ) -> VideoRecord:
        # Relay and strategy log lines emitted below carry the video being built.
        with bound_contextvars(video_id=video_id):
            transcript = await self._extractor.extract(video_id)
        return VideoRecord(
            id=video_id,
            title=info.title,
            channel_name=channel.name if channel is not None else info.author,
            thumbnail=info.thumbnail,
            thumbnail_high=thumbnail_url(video_id, "maxresdefault"),
            duration=transcript_duration(transcript.segments),
            transcript=transcript.segments,
            language=transcript.language,
            is_auto_generated=transcript.is_auto_generated,
            processed_at=self._now_iso(),
            channel_id=channel.id if channel is not None else None,
        )

    def _check_cooldown(self) -> None:
        decision = self._rate_limiter.peek(ADD_VIDEO_RATE_KEY)
        if not decision.allowed:
            raise ImportRateLimited(retry_after_seconds=decision.retry_after_seconds)

    def _record_failure(
        self,
        video_id: str,
        exc: ClipSeekerError,
        *,
        info: VideoInfo,
        channel_id: str | None = None,
    ) -> None:
        LOGGER.warning("video import failed video_id=%s reason=%s", video_id, exc)
        self._store.add_failed_video(
            FailedVideoRecord(
                id=video_id,
                error=str(exc),
                added_at=self._now_iso(),
                channel_id=channel_id,
                title=None if info.from_fallback else info.title,
            )
        )

    def _report_batch(self, batch: BatchProgress) -> None:
        self._progress.emit(
            ImportProgress(
                phase=batch.phase,
                batch=batch.batch,
                videos_found=batch.videos_found,
            )
        )


def transcript_duration(segments: Sequence[TranscriptSegment]) -> int:
    if not segments:
        return 0
    return math.ceil(segments[-1].end)


def _require_video_id(video_id: str) -> None:
    if not is_video_id(video_id):
        raise ValueError(f"Not a YouTube video id: {video_id!r}")
