"""ViaggiaTreno API client for fetching Italian railway data."""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

import httpx
from pydantic import ValidationError

from . import transforms
from .config import ViaggiaTrenoSettings
from .models import Segment, Station, Train, TrainAutocompleteMatch, TrainInfo, TrainStopInfo
from .result import Failure, FailureKind, Ok, Result

logger = logging.getLogger(__name__)

# Raised by transforms on payloads that do not have the expected shape
_SHAPE_ERRORS = (
    AttributeError,
    KeyError,
    IndexError,
    TypeError,
    ValueError,
    ValidationError,
)


class ViaggiaTrenoError(RuntimeError):
    """Base class for failures talking to ViaggiaTreno."""

    kind: FailureKind


class TransportError(ViaggiaTrenoError):
    """The upstream service could not be reached."""

    kind = FailureKind.TRANSPORT


class UpstreamStatusError(ViaggiaTrenoError):
    """The upstream answered with anything but HTTP 200."""

    kind = FailureKind.STATUS

    def __init__(self, status_code: int, path: str):
        self.status_code = status_code
        self.path = path
        super().__init__(f"Status code {status_code} for {path}")


class ParseError(ViaggiaTrenoError):
    """The response body does not have the expected shape."""

    kind = FailureKind.PARSE


def as_failure(error: ViaggiaTrenoError) -> Failure:
    return Failure(kind=error.kind, error=error)


class ViaggiaTrenoClient:
    """Client for interacting with the ViaggiaTreno API.

    Use as an async context manager. Operations follow two failure
    policies: catalog-style calls (stations, segments, stop info, region)
    log and return an empty value, while ``fetch_all_trains``,
    ``autocomplete`` and ``fetch_train_info`` return a ``Failure``.
    """

    def __init__(
        self,
        settings: ViaggiaTrenoSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or ViaggiaTrenoSettings()
        self.client: httpx.AsyncClient | None = None
        self._transport = transport
        self._clock = clock

    async def __aenter__(self):
        """Async context manager entry."""
        self.client = httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.timeout,
            headers={"User-Agent": self.settings.user_agent},
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.client:
            await self.client.aclose()

    def _timestamp(self) -> int:
        """Cache-busting token: current wall-clock time in milliseconds."""
        return int(self._clock() * 1000)

    async def _get(self, path: str) -> httpx.Response:
        if not self.client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        try:
            response = await self.client.get(path)
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {path} failed: {e}") from e

        if response.status_code != 200:
            raise UpstreamStatusError(response.status_code, path)
        return response

    async def _request_json(self, path: str) -> Any:
        """GET a JSON document from the API."""
        response = await self._get(path)
        try:
            return response.json()
        except ValueError as e:
            snippet = response.text[:200] or "<empty body>"
            raise ParseError(f"Non-JSON response for {path}: {snippet}") from e

    async def _request_text(self, path: str) -> str:
        response = await self._get(path)
        return response.text

    @staticmethod
    def _parse(path: str, parser: Callable[..., Any], *args: Any) -> Any:
        try:
            return parser(*args)
        except _SHAPE_ERRORS as e:
            raise ParseError(f"Unexpected response shape for {path}: {e}") from e

    async def fetch_stations(self) -> list[Station]:
        """Get every station with its id, city and location.

        Returns:
            List of stations; empty if the request or parsing failed.
        """
        path = "/elencoStazioni/0"
        try:
            payload = await self._request_json(path)
            return self._parse(
                path, lambda: [transforms.parse_station(raw) for raw in payload]
            )
        except ViaggiaTrenoError:
            logger.warning("Could not fetch stations", exc_info=True)
            return []

    async def fetch_segments(self, unique: bool = False, busy_only: bool = False) -> list[Segment]:
        """Get the track segments trains can travel through.

        Args:
            unique: Keep one record per bidirectional track
            busy_only: Keep only segments reported as occupied. The upstream
                flag is unreliable and often reports idle segments.

        Returns:
            List of segments; empty if the request or parsing failed.
        """
        path = f"/elencoTratte/0/6/{self.settings.categories}/null/{self._timestamp()}"
        try:
            payload = await self._request_json(path)
            segments = self._parse(
                path, lambda: [transforms.parse_segment(raw) for raw in payload]
            )
        except ViaggiaTrenoError:
            logger.warning("Could not fetch segments", exc_info=True)
            return []

        if busy_only:
            segments = [segment for segment in segments if segment.busy]
        if unique:
            segments = transforms.unique_segments(segments)
        return segments

    async def _segment_details(self, segment: Segment) -> list:
        path = (
            f"/dettagliTratta/0/{segment.segment_id_ab}/{segment.segment_id_ba}"
            f"/{self.settings.categories}/null"
        )
        payload = await self._request_json(path)
        if not isinstance(payload, list):
            raise ParseError(f"Expected a list of train groups for {path}")
        return payload

    async def _fan_out(self, segments: Sequence[Segment]) -> list[list]:
        """Fetch the train details of every segment through a worker pool.

        Results come back in segment order. The first failing request fails
        the whole batch and cancels the remaining workers.
        """
        queue: asyncio.Queue[tuple[int, Segment]] = asyncio.Queue()
        for item in enumerate(segments):
            queue.put_nowait(item)

        limit = self.settings.max_concurrency or len(segments)

        async def worker() -> list[tuple[int, list]]:
            fetched = []
            while not queue.empty():
                index, segment = queue.get_nowait()
                fetched.append((index, await self._segment_details(segment)))
            return fetched

        workers = [asyncio.create_task(worker()) for _ in range(min(limit, len(segments)))]
        try:
            batches = await asyncio.gather(*workers)
        finally:
            for task in workers:
                task.cancel()

        ordered = sorted(
            (pair for batch in batches for pair in batch), key=lambda pair: pair[0]
        )
        return [payload for _, payload in ordered]

    async def fetch_all_trains(self) -> Result[list[Train]]:
        """Get every train currently running on the network.

        Queries only unique segments, to keep the number of requests to the
        number of physical tracks. Trains are deduplicated by
        (train number, region), since numbers are reused across regions.

        Returns:
            ``Ok`` with the trains, or ``Failure`` if any segment request or
            the normalization failed.
        """
        segments = await self.fetch_segments(unique=True)
        logger.info("Fetching trains for %d segments", len(segments))

        try:
            payloads = await self._fan_out(segments)
            trains = self._parse(
                "/dettagliTratta",
                lambda: transforms.trains_from_records(
                    transforms.flatten_segment_details(payloads)
                ),
            )
        except ViaggiaTrenoError as e:
            logger.warning("Could not fetch trains", exc_info=True)
            return as_failure(e)

        return Ok(trains)

    async def region_id_for_station(self, station_id: str) -> int:
        """Get the region id of a station, or -1 if it cannot be fetched."""
        path = f"/regione/{station_id}"
        try:
            payload = await self._request_json(path)
            return self._parse(path, int, payload)
        except ViaggiaTrenoError:
            logger.warning("Could not fetch region of station %s", station_id, exc_info=True)
            return -1

    async def autocomplete(self, query: str | int) -> Result[list[TrainAutocompleteMatch]]:
        """Resolve a train number to its candidate departure stations.

        Args:
            query: Train number (or its beginning)

        Returns:
            ``Ok`` with the matches (possibly empty), or ``Failure``.
        """
        path = f"/cercaNumeroTrenoTrenoAutocomplete/{query}"
        try:
            text = await self._request_text(path)
            matches = self._parse(path, transforms.parse_autocomplete, text)
        except ViaggiaTrenoError as e:
            logger.warning("Could not autocomplete train %s", query, exc_info=True)
            return as_failure(e)
        return Ok(matches)

    async def _resolve_station(
        self, train_number: str | int, station_id: str | None, match_index: int
    ) -> str:
        if station_id is not None:
            return station_id

        result = await self.autocomplete(train_number)
        if isinstance(result, Failure):
            raise result.error
        if not 0 <= match_index < len(result.value):
            raise ParseError(
                f"No match #{match_index} for train {train_number} "
                f"({len(result.value)} found)"
            )
        return result.value[match_index].station_id_a

    async def fetch_stop_info(
        self,
        train_number: str | int,
        station_id: str | None = None,
        match_index: int = 0,
    ) -> list[TrainStopInfo]:
        """Get the stops of a train.

        Args:
            train_number: The train number
            station_id: Departure station id; looked up when omitted
            match_index: Which autocomplete match to use when several trains
                share the number

        Returns:
            The stops in route order; empty if anything failed.
        """
        try:
            station_id = await self._resolve_station(train_number, station_id, match_index)
            path = f"/tratteCanvas/{station_id}/{train_number}/{self._timestamp()}"
            payload = await self._request_json(path)
            return self._parse(
                path, lambda: [transforms.parse_canvas_stop(raw) for raw in payload]
            )
        except ViaggiaTrenoError:
            logger.warning("Could not fetch stops of train %s", train_number, exc_info=True)
            return []

    async def fetch_train_info(
        self,
        train_number: str | int,
        station_id: str | None = None,
        match_index: int = 0,
    ) -> Result[TrainInfo]:
        """Get the full itinerary and progress of a train.

        The current stop is inferred from the stop markers; see
        ``transforms.is_current_stop``.

        Args:
            train_number: The train number
            station_id: Departure station id; looked up when omitted
            match_index: Which autocomplete match to use when several trains
                share the number

        Returns:
            ``Ok`` with the train info, or ``Failure``.
        """
        try:
            station_id = await self._resolve_station(train_number, station_id, match_index)
            path = f"/andamentoTreno/{station_id}/{train_number}/{self._timestamp()}"
            payload = await self._request_json(path)
            info = self._parse(path, transforms.parse_train_info, payload)
        except ViaggiaTrenoError as e:
            logger.warning("Could not fetch info of train %s", train_number, exc_info=True)
            return as_failure(e)
        return Ok(info)
