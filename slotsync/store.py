"""Event store clients.

The store contract is three calls:

    GET  /events/{id}   -> full event JSON, 404 when absent or expired
    PUT  /events/{id}   -> unconditional full replace
    POST /events        -> {"id": ...} for a new event

No merge logic lives here.
"""

import abc
import asyncio
import copy
import logging
import secrets
import string
import time
from typing import Any

import httpx

from slotsync.availability import is_expired
from slotsync.config import get_settings
from slotsync.errors import InvalidEventError, NetworkError, NotFoundError
from slotsync.models import Event, NewEvent

logger = logging.getLogger("slotsync.store")


class EventStore(abc.ABC):
    """Read, replace and create one event record by id."""

    @abc.abstractmethod
    async def get_event(self, event_id: str) -> Event:
        """Fetch the current stored state. Raises NotFoundError or NetworkError."""

    @abc.abstractmethod
    async def put_event(self, event: Event) -> None:
        """Replace the stored record with ``event``."""

    @abc.abstractmethod
    async def create_event(self, new_event: NewEvent) -> str:
        """Store a new event and return its id."""

    async def aclose(self) -> None:
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def _make_http_logger(logger_name: str = "slotsync.http"):
    http_logger = logging.getLogger(logger_name)

    async def log_request(request: httpx.Request) -> None:
        request.extensions["slotsync_start"] = time.monotonic()
        http_logger.debug("http.request start method=%s url=%s", request.method, request.url)

    async def log_response(response: httpx.Response) -> None:
        request = response.request
        start = request.extensions.get("slotsync_start", time.monotonic())
        dur_ms = int((time.monotonic() - start) * 1000)
        http_logger.debug(
            "http.request end method=%s url=%s status=%s dur_ms=%s",
            request.method, request.url, response.status_code, dur_ms,
        )

    return {"request": [log_request], "response": [log_response]}


class HttpEventStore(EventStore):
    """Store client over HTTP using ``httpx.AsyncClient``.

    Pass ``client`` to share a client or to inject a transport in tests;
    otherwise one is built from settings and closed by ``aclose``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        expiry_days: int | None = None,
    ) -> None:
        settings = get_settings()
        self._owns_client = client is None
        if client is None:
            event_hooks = _make_http_logger() if settings.debug.http else None
            client = httpx.AsyncClient(
                base_url=base_url or settings.store.base_url,
                timeout=timeout if timeout is not None else settings.store.timeout_sec,
                headers={"Accept": "application/json"},
                event_hooks=event_hooks,
            )
        self._client = client
        self._expiry_days = expiry_days if expiry_days is not None else settings.sync.expiry_days

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Store request failed method=%s path=%s err=%r", method, path, e)
            raise NetworkError(detail=f"{method} {path} failed: {e}", method=method, path=path) from e
        if resp.status_code == 404:
            raise NotFoundError(path=path)
        if resp.is_error:
            logger.warning("Store non-OK response method=%s path=%s status=%s", method, path, resp.status_code)
            raise NetworkError(
                detail=f"{method} {path} returned {resp.status_code}",
                method=method,
                path=path,
                status_code=resp.status_code,
            )
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise InvalidEventError(detail="Store returned a non-JSON body") from e

    async def get_event(self, event_id: str) -> Event:
        resp = await self._request("GET", f"/events/{event_id}")
        event = Event.from_wire(self._json(resp))
        if is_expired(event, expiry_days=self._expiry_days):
            logger.info("Event %s has expired", event_id)
            raise NotFoundError(event_id=event_id, expired=True)
        return event

    async def put_event(self, event: Event) -> None:
        await self._request("PUT", f"/events/{event.id}", json=event.to_wire())
        logger.debug("Replaced event %s", event.id)

    async def create_event(self, new_event: NewEvent) -> str:
        resp = await self._request("POST", "/events", json=new_event.to_wire())
        data = self._json(resp)
        event_id = data.get("id") if isinstance(data, dict) else None
        if not event_id:
            raise InvalidEventError(detail="Store did not return an event id")
        logger.info("Created event id=%s", event_id)
        return str(event_id)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _generate_event_id(length: int = 10) -> str:
    chars = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(chars) for _ in range(length))


class MemoryEventStore(EventStore):
    """In-process store honoring the same contract (atomic read and replace).

    Records are kept as wire dicts so readers never share objects.
    """

    def __init__(self, expiry_days: int | None = None) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self._expiry_days = expiry_days if expiry_days is not None else get_settings().sync.expiry_days
        self.reads = 0
        self.writes = 0

    async def get_event(self, event_id: str) -> Event:
        async with self._lock:
            self.reads += 1
            record = self._records.get(event_id)
            if record is None:
                raise NotFoundError(event_id=event_id)
            event = Event.from_wire(copy.deepcopy(record))
        if is_expired(event, expiry_days=self._expiry_days):
            raise NotFoundError(event_id=event_id, expired=True)
        return event

    async def put_event(self, event: Event) -> None:
        async with self._lock:
            if event.id not in self._records:
                raise NotFoundError(event_id=event.id)
            self.writes += 1
            self._records[event.id] = event.to_wire()

    async def create_event(self, new_event: NewEvent) -> str:
        async with self._lock:
            for _ in range(10):
                event_id = _generate_event_id()
                if event_id not in self._records:
                    break
            else:
                raise RuntimeError("Failed to generate unique event ID")
            record = new_event.to_wire()
            record["id"] = event_id
            self._records[event_id] = record
            self.writes += 1
        logger.info("Created event id=%s", event_id)
        return event_id
