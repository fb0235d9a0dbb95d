"""Fire-and-forget telemetry sinks."""

import logging
from abc import ABC, abstractmethod

import httpx

from autotriage.models import TelemetryEvent

log = logging.getLogger(__name__)


class TelemetrySink(ABC):
    @abstractmethod
    async def track(self, event: TelemetryEvent) -> None:
        """Record event. Implementations must not raise."""


class LoggingTelemetrySink(TelemetrySink):
    async def track(self, event: TelemetryEvent) -> None:
        log.info("telemetry %s #%d %s", event.name, event.issue, event.properties)


class HttpTelemetrySink(TelemetrySink):
    """POSTs each event as JSON to a collector endpoint."""

    def __init__(self, url: str, client: httpx.AsyncClient) -> None:
        self._url = url
        self._client = client

    async def track(self, event: TelemetryEvent) -> None:
        try:
            response = await self._client.post(self._url, json=event.model_dump())
            response.raise_for_status()
        except httpx.HTTPError as exc:
            log.warning("dropping telemetry event %s for #%d: %s", event.name, event.issue, exc)
