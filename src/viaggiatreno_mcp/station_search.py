"""Station search over a fetched station catalog.

Matches with accent-folded, case-insensitive substring search across the
station name and its city.
"""

import unicodedata
from collections.abc import Iterable

from .models import Station


def _strip_accents(text: str) -> str:
    """Remove accents/diacritics from text via NFKD decomposition."""
    nfkd = unicodedata.normalize("NFKD", text)
    return "".join(c for c in nfkd if not unicodedata.combining(c))


def _normalize(text: str) -> str:
    """Normalize text for search: strip accents and casefold."""
    return _strip_accents(text).casefold()


def search_stations(stations: Iterable[Station], query: str) -> list[Station]:
    """Search stations by name or city with accent-insensitive matching.

    Args:
        stations: Catalog as returned by ``ViaggiaTrenoClient.fetch_stations``
        query: Search string (e.g., "Forli", "milano centrale", "S01700")

    Returns:
        Matching stations, exact station id matches first.
    """
    if not query or not query.strip():
        return []

    normalized_query = _normalize(query.strip())

    exact = []
    results = []
    for station in stations:
        if station.station_id.casefold() == normalized_query:
            exact.append(station)
            continue
        search_text = _normalize(f"{station.name} {station.city}")
        if normalized_query in search_text:
            results.append(station)

    return exact + results
