"""
Resilient client for the Spotify Web API.

Every remote call of the engine goes through SpotifyClient.call(). It
obtains a valid bearer token from the credential manager, issues the
request with requests, and classifies the response:

    2xx            Decoded JSON, or NO_CONTENT for 204 / non-JSON / empty bodies
    401            Log out, raise SessionExpired (never retried)
    429            Sleep Retry-After seconds (default 1.25) and retry
    5xx            Sleep attempt * 1s and retry
    network error  Same as 5xx
    other non-2xx  Raise RemoteRequestFailed immediately

Retries are a bounded loop: at most max_attempts (5) requests per call.
When the last attempt still sees 429 the call raises RateLimited; when it
still sees 5xx (or a transport failure) it raises ServerError. There is
no sleep after the last attempt.

Helpers built on call():
    paginate()             offset/limit listings ("next" link terminates)
    paginate_cursor()      cursor listings (cursors.after)
    batch_mutate()         fixed-size write batches with cumulative progress
    fetch_with_fallback()  alternate fetch shape when the primary is forbidden

Concurrency:
    None. Calls are strictly sequential; the shared rate limit of the API
    is easier to respect that way and progress stays monotonic.

Usage:
    client = SpotifyClient(credential_manager)
    me = client.call("/me")
    items = client.paginate(
        lambda offset, limit: client.call("/me/tracks", params={"offset": offset, "limit": limit}),
        limit=50,
    )
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol

import requests

from audio_vault.core.exceptions import (
    RateLimited,
    RemoteRequestFailed,
    ServerError,
    SessionExpired,
)
from audio_vault.core.logger import get_logger


API_BASE = "https://api.spotify.com/v1"

MAX_ATTEMPTS = 5
DEFAULT_RATE_LIMIT_DELAY = 1.25
BACKOFF_STEP = 1.0

# Errors raised by an extract function that mark a single item as unreadable
ITEM_ERRORS = (KeyError, TypeError, AttributeError, ValueError)

logger = get_logger(__name__)


class _NoContent:
    """Result of a successful call that returned no JSON body."""

    _instance: "_NoContent | None" = None

    def __new__(cls) -> "_NoContent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_CONTENT"


NO_CONTENT = _NoContent()


class AccessTokenProvider(Protocol):
    """What the client needs from the credential manager."""

    def get_valid_access_token(self) -> str: ...

    def logout(self) -> None: ...


@dataclass(frozen=True)
class BatchProgress:
    """
    Cumulative progress of a batch mutation.

    Attributes:
        completed: Ids written so far (including the last batch).
        total: Ids to write overall.
        batch_size: Size of the batch that just completed.
    """
    completed: int
    total: int
    batch_size: int


class SpotifyClient:
    """
    Authenticated, rate-limit aware Spotify Web API client.

    Attributes:
        credentials: Supplies access tokens and performs logout on 401.
        session: requests.Session carrying the HTTP connection pool.
        base_url: API base URL, paths are appended to it.
        timeout: Per-request timeout in seconds.
        max_attempts: Requests per call before giving up.
        rate_limit_delay: Sleep on 429 without a Retry-After header.
        backoff_step: Linear backoff unit for 5xx and transport errors.
    """

    def __init__(
        self,
        credentials: AccessTokenProvider,
        session: requests.Session | None = None,
        base_url: str = API_BASE,
        timeout: float = 30.0,
        max_attempts: int = MAX_ATTEMPTS,
        rate_limit_delay: float = DEFAULT_RATE_LIMIT_DELAY,
        backoff_step: float = BACKOFF_STEP,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.credentials = credentials
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.rate_limit_delay = rate_limit_delay
        self.backoff_step = backoff_step

    # =========================================================================
    # Single call
    # =========================================================================

    def call(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Issue one logical API call, retrying transient failures.

        Args:
            path: API path below the base URL, e.g. "/me/tracks".
            method: HTTP method.
            body: JSON-serializable request body, or None.
            params: Query parameters.

        Returns:
            Decoded JSON body, or NO_CONTENT.

        Raises:
            NotAuthenticated / SessionExpired: From the credential manager,
                or SessionExpired on a 401 (after logout).
            RateLimited: 429 on every attempt.
            ServerError: 5xx or transport failure on the last attempt.
            RemoteRequestFailed: Any other non-2xx status.
        """
        url = f"{self.base_url}{path}"

        for attempt in range(1, self.max_attempts + 1):
            token = self.credentials.get_valid_access_token()
            headers = {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            }

            try:
                response = self.session.request(
                    method,
                    url,
                    headers=headers,
                    json=body,
                    params=params,
                    timeout=self.timeout,
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt >= self.max_attempts:
                    raise ServerError(path, None, attempt, reason=str(e)) from e
                delay = attempt * self.backoff_step
                logger.warning(
                    f"Network error on {method} {path}, retrying in {delay:.1f}s "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                time.sleep(delay)
                continue

            status = response.status_code

            if status == 401:
                logger.warning("Spotify rejected the access token, logging out")
                self.credentials.logout()
                raise SessionExpired(
                    "Spotify session expired. Please sign in again.",
                    details={"path": path, "status": status}
                )

            if status == 429:
                retry_after = self._retry_after(response)
                if attempt >= self.max_attempts:
                    raise RateLimited(path, attempt, retry_after)
                logger.warning(
                    f"Rate limited on {path}, waiting {retry_after:.2f}s "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                time.sleep(retry_after)
                continue

            if 500 <= status < 600:
                if attempt >= self.max_attempts:
                    raise ServerError(path, status, attempt, reason=response.reason or "")
                delay = attempt * self.backoff_step
                logger.warning(
                    f"Spotify server error {status} on {path}, retrying in {delay:.1f}s "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                time.sleep(delay)
                continue

            if not 200 <= status < 300:
                raise RemoteRequestFailed(status, path, response.text)

            return self._decode(response)

        # Unreachable: every branch of the last attempt returns or raises
        raise ServerError(path, None, self.max_attempts)

    def _retry_after(self, response: requests.Response) -> float:
        raw = response.headers.get("Retry-After")
        if raw is None:
            return self.rate_limit_delay
        try:
            return max(0.0, float(raw))
        except ValueError:
            return self.rate_limit_delay

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if response.status_code == 204:
            return NO_CONTENT
        content_type = response.headers.get("Content-Type", "")
        if "json" not in content_type.lower() or not response.content:
            return NO_CONTENT
        try:
            return response.json()
        except ValueError:
            return NO_CONTENT

    # =========================================================================
    # Listings
    # =========================================================================

    def paginate(
        self,
        fetch_page: Callable[[int, int], Any],
        limit: int,
        extract: Callable[[Any], Any] | None = None,
    ) -> list[Any]:
        """
        Collect every item of an offset/limit listing.

        Args:
            fetch_page: Called with (offset, limit); returns a page object
                        with "items" and "next".
            limit: Page size; the offset advances by this much per page.
            extract: Optional item mapper. Items for which it returns None
                     or raises KeyError/TypeError/AttributeError/ValueError
                     are skipped.

        Returns:
            Flattened list of (extracted) items in listing order.

        Behavior:
            Stops after the first page whose "next" is empty, or that has
            no items at all.
        """
        results: list[Any] = []
        skipped = 0
        offset = 0

        while True:
            page = fetch_page(offset, limit)
            items = page.get("items") if isinstance(page, dict) else None
            items = items or []

            page_results, page_skipped = _extract_items(items, extract)
            results.extend(page_results)
            skipped += page_skipped

            if not items or not page.get("next"):
                break
            offset += limit

        if skipped:
            logger.debug(f"Skipped {skipped} unreadable item(s) while paginating")
        return results

    def paginate_cursor(
        self,
        fetch_page: Callable[[str | None], Any],
        container: str | None = None,
        extract: Callable[[Any], Any] | None = None,
    ) -> list[Any]:
        """
        Collect every item of a cursor listing (e.g. followed artists).

        Args:
            fetch_page: Called with the `after` cursor (None for the first
                        page); returns the response object.
            container: Key wrapping the page in the response
                       ({"artists": {...}}), or None if the response is
                       the page itself.
            extract: Optional item mapper, same rules as paginate().
        """
        results: list[Any] = []
        skipped = 0
        cursor: str | None = None

        while True:
            response = fetch_page(cursor)
            page = response.get(container) if container and isinstance(response, dict) else response
            if not isinstance(page, dict):
                break

            items = page.get("items") or []
            page_results, page_skipped = _extract_items(items, extract)
            results.extend(page_results)
            skipped += page_skipped

            next_cursor = (page.get("cursors") or {}).get("after")
            if not items or not page.get("next") or not next_cursor or next_cursor == cursor:
                break
            cursor = next_cursor

        if skipped:
            logger.debug(f"Skipped {skipped} unreadable item(s) while paginating")
        return results

    # =========================================================================
    # Writes
    # =========================================================================

    def batch_mutate(
        self,
        ids: Iterable[str],
        batch_size: int,
        send: Callable[[list[str]], Any],
        on_progress: Callable[[BatchProgress], None] | None = None,
    ) -> int:
        """
        Write ids in fixed-size groups, one request per group, in order.

        Args:
            ids: Identifiers to write.
            batch_size: Provider limit per request.
            send: Performs the request for one group.
            on_progress: Called after each group with cumulative progress.

        Returns:
            Number of ids written.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        pending = list(ids)
        total = len(pending)
        completed = 0

        for start in range(0, total, batch_size):
            batch = pending[start:start + batch_size]
            send(batch)
            completed += len(batch)
            if on_progress is not None:
                on_progress(BatchProgress(completed=completed, total=total, batch_size=len(batch)))

        return completed

    def fetch_with_fallback(
        self,
        primary: Callable[[], Any],
        fallback: Callable[[], Any],
        path: str,
    ) -> Any:
        """
        Run primary; if it is forbidden (403), run fallback instead.

        Errors other than 403 from primary propagate unchanged. Whatever
        fallback raises (403 included) also propagates; deciding to skip
        the item is up to the caller.
        """
        try:
            return primary()
        except RemoteRequestFailed as e:
            if not e.is_forbidden:
                raise
            logger.debug(f"Access to {path} is forbidden, trying the alternate endpoint")
        return fallback()


def _extract_items(
    items: list[Any],
    extract: Callable[[Any], Any] | None,
) -> tuple[list[Any], int]:
    if extract is None:
        return list(items), 0

    results = []
    skipped = 0
    for item in items:
        try:
            value = extract(item)
        except ITEM_ERRORS:
            skipped += 1
            continue
        if value is None:
            skipped += 1
            continue
        results.append(value)
    return results, skipped
