from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RelayAttempt:
    relay: str
    reason: str


@dataclass(frozen=True)
class StrategyAttempt:
    strategy: str
    reason: str


class ClipSeekerError(Exception):
    pass


class FetchExhausted(ClipSeekerError):
    def __init__(self, url: str, attempts: tuple[RelayAttempt, ...]) -> None:
        self.url = url
        self.attempts = attempts
        details = "; ".join(f"{attempt.relay}: {attempt.reason}" for attempt in attempts)
        super().__init__(
            f"All relays failed for {url} ({details or 'no relays configured'})."
        )


class ChannelNotFound(ClipSeekerError):
    def __init__(self, identifier: str, attempted_urls: tuple[str, ...]) -> None:
        self.identifier = identifier
        self.attempted_urls = attempted_urls
        super().__init__(
            f"Could not fetch channel '{identifier}'. Please check the URL. "
            f"Tried: {', '.join(attempted_urls)}"
        )


class NoTranscriptAvailable(ClipSeekerError):
    def __init__(self, video_id: str, attempts: tuple[StrategyAttempt, ...]) -> None:
        self.video_id = video_id
        self.attempts = attempts
        details = "; ".join(f"{attempt.strategy}: {attempt.reason}" for attempt in attempts)
        super().__init__(f"No transcript available for video {video_id} ({details}).")

    @property
    def attempted_strategies(self) -> tuple[str, ...]:
        return tuple(attempt.strategy for attempt in self.attempts)


class VideoAlreadyIndexed(ClipSeekerError):
    def __init__(self, video_id: str) -> None:
        self.video_id = video_id
        super().__init__(f"Video {video_id} is already in the library.")


class ImportRateLimited(ClipSeekerError):
    def __init__(self, *, retry_after_seconds: int) -> None:
        self.retry_after_seconds = max(1, retry_after_seconds)
        super().__init__(
            f"Please wait {_format_cooldown(self.retry_after_seconds)} before adding another video."
        )


def _format_cooldown(seconds: int) -> str:
    minutes, remainder = divmod(seconds, 60)
    if minutes == 0:
        return f"{remainder}s"
    return f"{minutes}m {remainder:02d}s"
