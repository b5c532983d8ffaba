"""Usage metrics — one sink per process, fed by fire-and-forget tasks.

Sinks:
  - KeenMetrics: posts events to a Keen-style write API (remote analytics)
  - InMemoryMetricsRegister: keeps every event in process, served at /metrics

The sink is picked once at startup by create_metrics_sink(). Request code
only talks to MetricsDispatcher, which schedules the sink calls as detached
tasks and swallows their failures in one place.
"""

import asyncio
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Literal, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError

from ibanservice.config import Settings
from ibanservice.iban import Iban
from ibanservice.orchestrator.schemas import UNPARSEABLE_PREFIX, ValidationResult

logger = logging.getLogger(__name__)


# ═══════════════ EVENTS ═══════════════

EventSource = Literal["cache", "fresh"]


class MetricsEvent(BaseModel):
    """Loggable shape shared by both sinks."""
    environment: str
    countryCode: str = ""
    valid: bool = False
    source: EventSource = "fresh"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def event_from_result(
    environment: str,
    result: ValidationResult,
    source: EventSource = "cache",
) -> MetricsEvent:
    # unparseable verdicts echo the raw input, which carries no country
    if result.message.startswith(UNPARSEABLE_PREFIX):
        country_code = ""
    else:
        country_code = result.ibanPrintFormat.replace(" ", "")[:2].upper()
    return MetricsEvent(
        environment=environment,
        countryCode=country_code,
        valid=result.valid,
        source=source,
    )


def event_from_iban(environment: str, iban: Iban) -> MetricsEvent:
    return MetricsEvent(
        environment=environment,
        countryCode=iban.country_code,
        valid=iban.validate().valid,
        source="fresh",
    )


def result_from_cached_body(body: str) -> ValidationResult | None:
    """Rebuild a result from a rendered body; None (with a warning) if it isn't one."""
    try:
        return ValidationResult.from_json(body)
    except ValidationError as e:
        logger.warning("Metrics event dropped — cached body is not a validation result: %s", str(e)[:100])
        return None


# ═══════════════ SINKS ═══════════════

class MetricsSink(Protocol):
    name: str

    async def log_from_cached_body(self, environment: str, body: str) -> None:
        ...

    async def log_from_parsed_iban(self, environment: str, iban: Iban) -> None:
        ...


class InMemoryMetricsRegister:
    """Append-only event register. No eviction."""

    name = "local"

    def __init__(self):
        self._events: list[MetricsEvent] = []
        self._lock = threading.Lock()

    def register(self, event: MetricsEvent):
        with self._lock:
            self._events.append(event)

    async def log_from_cached_body(self, environment: str, body: str) -> None:
        result = result_from_cached_body(body)
        if result is not None:
            self.register(event_from_result(environment, result, source="cache"))

    async def log_from_parsed_iban(self, environment: str, iban: Iban) -> None:
        self.register(event_from_iban(environment, iban))

    @property
    def events(self) -> list[MetricsEvent]:
        with self._lock:
            return list(self._events)

    def snapshot(self) -> dict:
        """Read view for /metrics: totals, per-country counts and all events."""
        events = self.events
        by_country: dict[str, int] = {}
        valid = 0
        for event in events:
            key = event.countryCode or "unknown"
            by_country[key] = by_country.get(key, 0) + 1
            if event.valid:
                valid += 1
        return {
            "total": len(events),
            "valid": valid,
            "invalid": len(events) - valid,
            "byCountry": dict(sorted(by_country.items())),
            "events": [e.model_dump(mode="json") for e in events],
        }


class KeenMetrics:
    """Async writer for the Keen events API."""

    name = "remote"

    def __init__(
        self,
        project_id: str,
        write_key: str,
        base_url: str = "https://api.keen.io/3.0",
        collection: str = "validations",
        timeout: float = 5.0,
    ):
        self.project_id = project_id
        self.write_key = write_key
        self.base_url = base_url.rstrip("/")
        self.collection = collection
        self.timeout = timeout

    @property
    def events_url(self) -> str:
        return f"{self.base_url}/projects/{self.project_id}/events/{self.collection}"

    async def write(self, event: MetricsEvent) -> bool:
        """POST one event. Returns False on any failure; never raises."""
        start = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self.events_url,
                    json=event.model_dump(mode="json"),
                    headers={"Authorization": self.write_key},
                )
            elapsed_ms = int((time.monotonic() - start) * 1000)

            if resp.status_code >= 300:
                logger.warning(
                    "Keen write | status=%d | %dms | country=%s",
                    resp.status_code, elapsed_ms, event.countryCode,
                )
                return False

            logger.debug("Keen write OK | %dms | country=%s", elapsed_ms, event.countryCode)
            return True

        except httpx.TimeoutException:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning("Keen write timeout | %dms", elapsed_ms)
            return False
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.error("Keen write error | %dms | %s", elapsed_ms, str(e)[:200])
            return False

    async def log_from_cached_body(self, environment: str, body: str) -> None:
        result = result_from_cached_body(body)
        if result is not None:
            await self.write(event_from_result(environment, result, source="cache"))

    async def log_from_parsed_iban(self, environment: str, iban: Iban) -> None:
        await self.write(event_from_iban(environment, iban))


def create_metrics_sink(settings: Settings) -> MetricsSink:
    """Remote sink when both Keen credentials are set, in-memory register otherwise."""
    if settings.has_remote_metrics:
        logger.info("Metrics: remote (Keen) | project=%s | env=%s", settings.keen_project_id, settings.environment)
        return KeenMetrics(
            project_id=settings.keen_project_id,
            write_key=settings.keen_write_key,
            base_url=settings.keen_base_url,
            collection=settings.keen_collection,
            timeout=settings.keen_timeout_seconds,
        )
    logger.info("Metrics: in-memory register | env=%s", settings.environment)
    return InMemoryMetricsRegister()


# ═══════════════ DISPATCH ═══════════════

class MetricsDispatcher:
    """Schedules sink calls as detached tasks; the request path never awaits them."""

    def __init__(self, sink: MetricsSink, environment: str):
        self.sink = sink
        self.environment = environment
        self._pending: set[asyncio.Task] = set()

    def log_cached_body(self, body: str):
        self._spawn(self.sink.log_from_cached_body(self.environment, body))

    def log_parsed_iban(self, iban: Iban):
        self._spawn(self.sink.log_from_parsed_iban(self.environment, iban))

    def _spawn(self, coro):
        task = asyncio.create_task(self._guarded(coro))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _guarded(self, coro):
        try:
            await coro
        except Exception as e:
            logger.warning("Metrics dispatch failed | sink=%s | %s", self.sink.name, str(e)[:100])

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self):
        """Wait for every scheduled log call to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
