"""Fetching target URLs through an ordered list of third-party relays.

A relay answers "200 + raw target body"; anything else is a failed attempt and
the next relay is tried. Attempts are strictly sequential so a single fetch
never fans out across the shared relay infrastructure.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from clipseeker.errors import FetchExhausted, RelayAttempt

LOGGER = logging.getLogger("clipseeker.relay")

DEFAULT_HEADERS: dict[str, str] = {
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "en-US,en;q=0.9",
}


class Relay(Protocol):
    name: str

    def build_url(self, target_url: str) -> str:
        ...


class PrefixRelay:
    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self.name = httpx.URL(prefix).host or prefix

    def build_url(self, target_url: str) -> str:
        return self.prefix + quote(target_url, safe="")

    def __repr__(self) -> str:
        return f"PrefixRelay({self.prefix!r})"


class DirectRelay:
    name = "direct"

    def build_url(self, target_url: str) -> str:
        return target_url

    def __repr__(self) -> str:
        return "DirectRelay()"


def build_relays(prefixes: Sequence[str], *, direct_first: bool = False) -> list[Relay]:
    relays: list[Relay] = [PrefixRelay(prefix) for prefix in prefixes]
    if direct_first:
        relays.insert(0, DirectRelay())
    return relays


class RelayFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        relays: Sequence[Relay],
        *,
        timeout_seconds: float = 15.0,
        min_body_length: int = 1,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._client = client
        self._relays = tuple(relays)
        self._timeout = httpx.Timeout(max(0.1, timeout_seconds))
        self._min_body_length = max(1, min_body_length)
        self._headers = {**DEFAULT_HEADERS, **(headers or {})}

    @property
    def relays(self) -> tuple[Relay, ...]:
        return self._relays

    async def fetch_text(
        self,
        url: str,
        *,
        method: str = "GET",
        json_body: dict[str, Any] | None = None,
        min_length: int | None = None,
        accept: Callable[[str], bool] | None = None,
    ) -> str:
        required_length = self._min_body_length if min_length is None else max(1, min_length)
        attempts: list[RelayAttempt] = []

        for relay in self._relays:
            reason = await self._attempt(
                relay,
                url,
                method=method,
                json_body=json_body,
                required_length=required_length,
                accept=accept,
            )
            if isinstance(reason, _Body):
                if attempts:
                    LOGGER.info(
                        "relay fetch recovered relay=%s failed_before=%s url=%s",
                        relay.name,
                        len(attempts),
                        url,
                    )
                return reason.text
            attempts.append(RelayAttempt(relay=relay.name, reason=reason))
            LOGGER.warning(
                "relay attempt failed relay=%s reason=%s url=%s", relay.name, reason, url
            )

        raise FetchExhausted(url, tuple(attempts))

    async def _attempt(
        self,
        relay: Relay,
        url: str,
        *,
        method: str,
        json_body: dict[str, Any] | None,
        required_length: int,
        accept: Callable[[str], bool] | None,
    ) -> _Body | str:
        relay_url = relay.build_url(url)
        try:
            response = await self._client.request(
                method,
                relay_url,
                json=json_body,
                headers=self._headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException:
            return "timed out"
        except httpx.HTTPError as exc:
            return f"transport error: {_summarize(exc)}"

        if not response.is_success:
            return f"http {response.status_code}"

        body = response.text
        if len(body) < required_length:
            return f"body too short ({len(body)} < {required_length})"
        if accept is not None and not accept(body):
            return "unexpected body"
        return _Body(body)


class _Body:
    __slots__ = ("text",)

    def __init__(self, text: str) -> None:
        self.text = text


def _summarize(exc: Exception, *, max_length: int = 200) -> str:
    message = " ".join(str(exc).split()) or type(exc).__name__
    if len(message) <= max_length:
        return message
    return f"{message[: max_length - 3]}..."
