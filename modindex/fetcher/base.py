"""
Base classes and shared HTTP plumbing for source adapters.

Every ecosystem is a ``SourceAdapter`` with two operations: ``discover`` lazily
yields repository descriptors, and ``fetch_facts`` assembles the raw facts for
one of them. HTTP access is composed in through ``HttpClient``.
"""

import abc
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, TypeVar

import requests
from requests.adapters import HTTPAdapter
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from urllib3.util.retry import Retry

from modindex.core.exceptions import CancelledError, FetchError, ModIndexError
from modindex.core.interfaces import FetcherConfig, RepositoryDescriptor
from modindex.core.models import RawPackage, VersionRecord


logger = logging.getLogger(__name__)

T = TypeVar("T")


class HttpClient:
    """
    Thin wrapper around a ``requests`` session with retry logic.

    Status retries (429 and 5xx) are handled by the urllib3 adapter; connection
    errors and timeouts are retried with exponential backoff and a timeout that
    grows with each attempt.
    """

    wait = wait_exponential(multiplier=1, min=2, max=10)

    def __init__(self, config: Optional[FetcherConfig] = None, headers: Optional[Dict[str, str]] = None):
        """
        Initialize the HTTP client.

        Args:
            config: Configuration for the client. If None, uses default configuration.
            headers: Headers sent with every request.
        """
        self.config = config or FetcherConfig()
        self.headers = {"User-Agent": self.config.user_agent}
        self.headers.update(headers or {})
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """
        Create a requests session with retry logic.

        Returns:
            A configured requests session.
        """
        session = requests.Session()

        retry_strategy = Retry(
            total=self.config.retry_count,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def request(self, url: str, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        """
        Send a GET request, retrying transport failures.

        Non-OK responses are returned as-is.

        Raises:
            FetchError: If the request fails after retries.
        """
        merged_headers = dict(self.headers)
        merged_headers.update(headers or {})

        retrying = Retrying(
            retry=retry_if_exception_type((
                requests.exceptions.ConnectionError,
                requests.exceptions.Timeout,
            )),
            stop=stop_after_attempt(max(1, self.config.retry_count)),
            wait=self.wait,
            reraise=True,
        )

        try:
            for attempt in retrying:
                with attempt:
                    # Progressive timeout - increase timeout with each attempt
                    timeout = self.config.request_timeout + (attempt.retry_state.attempt_number - 1) * 10
                    logger.debug(f"GET {url} (attempt {attempt.retry_state.attempt_number})")
                    return self.session.get(url, headers=merged_headers, timeout=timeout)
        except requests.exceptions.RequestException as e:
            raise FetchError(f"GET {url} failed: {e}") from e

    def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        """
        Fetch a URL that must succeed.

        Raises:
            FetchError: On transport failure or a non-OK status.
        """
        response = self.request(url, headers=headers)
        if not response.ok:
            raise FetchError(f"GET {url} returned HTTP {response.status_code}")
        return response

    def get_json(self, url: str, headers: Optional[Dict[str, str]] = None) -> Any:
        return _decode_json(self.get(url, headers=headers), url)

    def get_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        return self.get(url, headers=headers).text

    def get_optional_json(self, url: str, headers: Optional[Dict[str, str]] = None) -> Optional[Any]:
        """
        Fetch JSON from a URL that may legitimately be absent.

        Returns:
            Parsed JSON, or None for any non-OK status.
        """
        response = self.request(url, headers=headers)
        if not response.ok:
            logger.debug(f"GET {url} returned HTTP {response.status_code}, treating as absent")
            return None
        return _decode_json(response, url)

    def get_optional_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> Optional[str]:
        """
        Fetch text from a URL that may legitimately be absent.

        Returns:
            Response text, or None for any non-OK status.
        """
        response = self.request(url, headers=headers)
        if not response.ok:
            logger.debug(f"GET {url} returned HTTP {response.status_code}, treating as absent")
            return None
        return response.text

    def close(self) -> None:
        self.session.close()


def _decode_json(response: requests.Response, url: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        logger.debug(f"Response content (first 500 chars): {response.text[:500]}")
        raise FetchError(f"invalid JSON from {url}: {e}") from e


class SourceAdapter(abc.ABC):
    """
    Abstract base class for ecosystem source adapters.

    Subclasses set ``name`` (the ecosystem id), ``source`` and
    ``package_manager`` and implement ``discover`` and ``fetch_facts``.
    """

    name: str = ""
    source: str = ""
    package_manager: str = ""

    def __init__(
        self,
        config: Optional[FetcherConfig] = None,
        http: Optional[HttpClient] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        """
        Initialize the adapter.

        Args:
            config: Configuration for fetching. If None, uses default configuration.
            http: HTTP client to use. If None, one is created from ``config``.
            cancel_event: Event that requests cooperative shutdown.
        """
        self.config = config or FetcherConfig()
        self.http = http or HttpClient(self.config)
        self.cancel_event = cancel_event or threading.Event()

    @abc.abstractmethod
    def discover(self) -> Iterator[RepositoryDescriptor]:
        """
        Yield the descriptors of every package in this ecosystem.

        Raises:
            DiscoveryError: If the search backend fails.
        """
        pass

    @abc.abstractmethod
    def fetch_facts(self, descriptor: RepositoryDescriptor) -> Optional[RawPackage]:
        """
        Assemble the raw facts of one package.

        Returns:
            The raw package, or None if it is not applicable or has no versions.
        """
        pass

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise CancelledError(f"{self.name}: shutdown requested")

    def _unique(self, descriptors: Iterable[RepositoryDescriptor]) -> Iterator[RepositoryDescriptor]:
        """Drop descriptors already yielded in this pass."""
        seen = set()
        for descriptor in descriptors:
            if descriptor in seen:
                continue
            seen.add(descriptor)
            yield descriptor

    def _gather(self, calls: Dict[str, Callable[[], Any]]) -> Dict[str, Any]:
        """
        Run independent fetches in parallel.

        Every call runs to completion; the first failure, in ``calls`` order, is
        then re-raised.
        """
        workers = max(1, min(len(calls), self.config.concurrent_requests))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {key: executor.submit(call) for key, call in calls.items()}
        return {key: future.result() for key, future in futures.items()}

    def _resolve_versions(
        self,
        label: str,
        items: List[T],
        resolve: Callable[[T], Optional[VersionRecord]],
        describe: Callable[[T], str] = str
    ) -> List[VersionRecord]:
        """
        Resolve one VersionRecord per item, skipping items that fail.

        Each item is a cancellation point. A failing item is logged and skipped
        without affecting its siblings.

        Args:
            label: Package identity used in log messages.
            items: Release descriptions to resolve.
            resolve: Turns one item into a VersionRecord, or None to skip it.
            describe: Renders an item for log messages.

        Raises:
            CancelledError: If shutdown was requested.
        """

        def resolve_one(item: T) -> Optional[VersionRecord]:
            self._check_cancelled()
            try:
                return resolve(item)
            except CancelledError:
                raise
            except (ModIndexError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping version {describe(item)} of {label}: {e}")
                return None

        if not items:
            return []

        workers = max(1, min(len(items), self.config.concurrent_requests))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(resolve_one, item) for item in items]

        return [version for version in (future.result() for future in futures) if version is not None]
