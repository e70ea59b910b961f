"""HTTP client for interacting with OSRM services."""

from __future__ import annotations

import logging
import threading
from typing import Sequence

import httpx

from ...config import settings
from ...errors import RoutingBackendError
from ...models.domain import Coordinate
from .models import RouteLeg

logger = logging.getLogger(__name__)


class OSRMClient:
    """Distance oracle backed by an OSRM server.

    Every call is a single request with no retry; the caller decides how to
    recover. A bounded semaphore caps requests in flight across all threads
    sharing this client so bulk schedule generation cannot flood the backend.
    """

    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_parallel_requests: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.routing_timeout_seconds
        self.max_parallel_requests = max_parallel_requests or settings.routing_max_parallel_requests
        self._slots = threading.BoundedSemaphore(self.max_parallel_requests)
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        # One client per request keeps the class safe to share between threads
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
        )

    def _get_json(self, url: str, params: dict) -> dict:
        with self._slots:
            client = self._get_client()
            try:
                response = client.get(url, params=params)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as exc:
                raise RoutingBackendError(
                    f"OSRM returned HTTP {exc.response.status_code} for {url}"
                ) from exc
            except httpx.HTTPError as exc:
                raise RoutingBackendError(f"Failed to reach OSRM service at {self.base_url}: {exc}") from exc
            except ValueError as exc:
                raise RoutingBackendError(f"OSRM returned a body that is not JSON: {exc}") from exc
            finally:
                client.close()

        if not isinstance(data, dict):
            raise RoutingBackendError("OSRM response is not a JSON object.")
        if data.get("code") != "Ok":
            error_msg = data.get("message", data.get("code", "Unknown OSRM error"))
            raise RoutingBackendError(f"OSRM request failed: {error_msg}")
        return data

    def leg(self, origin: Coordinate, destination: Coordinate) -> RouteLeg:
        """Road path and distance between two coordinates via the OSRM route endpoint."""

        coordinate_str = format_coordinates([origin, destination])
        params = {
            "overview": "full",
            "geometries": "polyline",
            "steps": "false",
        }
        url = f"{self.base_url}/route/v1/{self.profile}/{coordinate_str}"
        data = self._get_json(url, params)

        try:
            route = data["routes"][0]
            distance = float(route["distance"])
            geometry = route["geometry"]
            path = decode_polyline(geometry) if isinstance(geometry, str) else []
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise RoutingBackendError(f"Malformed OSRM route response: {exc}") from exc
        if distance < 0:
            raise RoutingBackendError(f"OSRM returned a negative distance ({distance}).")

        return RouteLeg(path=anchor_path(path, origin, destination), distance_m=distance)

    def matrix(self, coordinates: Sequence[Coordinate]) -> list[list[float | None]]:
        """Pairwise road distances in meters via the OSRM table endpoint."""

        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM table.")

        coordinate_str = format_coordinates(coordinates)
        url = f"{self.base_url}/table/v1/{self.profile}/{coordinate_str}"
        data = self._get_json(url, {"annotations": "distance"})

        distances = data.get("distances")
        if not isinstance(distances, list) or len(distances) != len(coordinates):
            raise RoutingBackendError("OSRM table response missing distances.")
        matrix: list[list[float | None]] = []
        for row in distances:
            if not isinstance(row, list) or len(row) != len(coordinates):
                raise RoutingBackendError("OSRM table response has a malformed distance row.")
            matrix.append([float(value) if value is not None else None for value in row])
        return matrix


def format_coordinates(coordinates: Sequence[Coordinate]) -> str:
    """OSRM expects ``lon,lat;lon,lat``; internal coordinates are (lat, lon)."""
    return ";".join(f"{lon:.6f},{lat:.6f}" for lat, lon in coordinates)


def anchor_path(path: list[Coordinate], origin: Coordinate, destination: Coordinate) -> list[Coordinate]:
    """Make the path start at ``origin`` and end at ``destination`` exactly.

    OSRM snaps waypoints to the road network, so the decoded geometry can start
    a few meters away from the requested point.
    """
    anchored = list(path)
    if not anchored or anchored[0] != origin:
        anchored.insert(0, origin)
    if anchored[-1] != destination:
        anchored.append(destination)
    return anchored


def decode_polyline(polyline: str) -> list[Coordinate]:
    """Decode Google polyline string to list of (lat, lon) coordinates.

    OSRM uses Google's polyline encoding format (precision 5) for route geometry.
    """
    coordinates = []
    index = 0
    lat = 0
    lon = 0

    while index < len(polyline):
        deltas = []
        for _ in range(2):
            shift = 0
            result = 0
            while True:
                b = ord(polyline[index]) - 63
                index += 1
                result |= (b & 0x1f) << shift
                shift += 5
                if b < 0x20:
                    break
            deltas.append(~(result >> 1) if (result & 1) else (result >> 1))
        lat += deltas[0]
        lon += deltas[1]
        coordinates.append((lat / 1e5, lon / 1e5))

    return coordinates


def check_health(base_url: str | None = None) -> bool:
    """Check OSRM service health with a minimal two-point route request."""
    base = base_url or settings.osrm_base_url
    if not base:
        return False
    try:
        client = OSRMClient(base_url=base, timeout=5.0, max_parallel_requests=1)
        client.leg((52.517037, 13.388860), (52.496891, 13.385983))
        return True
    except RoutingBackendError as exc:
        logger.warning(f"OSRM health check failed: {exc}")
        return False
