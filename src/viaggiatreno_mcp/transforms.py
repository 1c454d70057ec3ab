"""Pure functions turning raw ViaggiaTreno payloads into typed records.

Several upstream fields are missing or ambiguous, so some values are derived
heuristically. Each heuristic lives in its own function so it can be tested
and swapped on its own:

- ``train_category``: falls back to the first token of the formatted train
  number when the category field is empty (FR trains come as " FR 9516").
- ``is_current_stop``: the full itinerary does not say which stop is the
  current one; it is inferred from the ``actualFermataType`` markers.
- ``keep_train``: the completion filter applied before normalization.

Functions here raise ``AttributeError``, ``KeyError``, ``IndexError``,
``TypeError`` or ``ValueError`` on malformed input; callers translate them
into parse errors.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .models import (
    Segment,
    Station,
    Train,
    TrainAutocompleteMatch,
    TrainInfo,
    TrainStopInfo,
)

CURRENT_STOP_MARKER = 1
FIRST_STOP_TYPE = "P"
LAST_STOP_TYPE = "A"


def parse_duration(text: str) -> int:
    """Convert an "HH:MM" duration to minutes."""
    hours, minutes = text.split(":")
    return int(hours) * 60 + int(minutes)


def train_category(category: str | None, formatted_number: str) -> str:
    """Return the category, or the first token of the formatted number."""
    if category:
        return category
    tokens = formatted_number.split()
    return tokens[0] if tokens else ""


def keep_train(arrived: bool, departed: bool) -> bool:
    """Completion filter: only trains both arrived and departed are dropped."""
    return not arrived or not departed


def is_current_stop(
    markers: Sequence[Any], index: int, sentinel: Any = CURRENT_STOP_MARKER
) -> bool:
    """Infer whether the stop at ``index`` is the train's current one.

    A stop is current when its marker equals ``sentinel`` and the next stop
    either does not exist or carries a different marker.
    """
    if markers[index] != sentinel:
        return False
    if index + 1 >= len(markers):
        return True
    return markers[index + 1] != sentinel


def select_platforms(stop: Mapping[str, Any], is_first: bool) -> tuple[str | None, str | None]:
    """Return (expected, actual) platform.

    The first stop only has departure platforms; every other stop is read
    from its arrival platforms.
    """
    if is_first:
        return (
            stop.get("binarioProgrammatoPartenzaDescrizione"),
            stop.get("binarioEffettivoPartenzaDescrizione"),
        )
    return (
        stop.get("binarioProgrammatoArrivoDescrizione"),
        stop.get("binarioEffettivoArrivoDescrizione"),
    )


def unique_segments(segments: Iterable[Segment]) -> list[Segment]:
    """Collapse segments sharing ``unique_key``; the last one wins.

    The surviving record keeps the position of the key's first occurrence.
    """
    by_key: dict[str, Segment] = {}
    for segment in segments:
        by_key[segment.unique_key] = segment
    return list(by_key.values())


def dedupe_trains(trains: Iterable[Train]) -> list[Train]:
    """Deduplicate by (train number, region); the last one wins."""
    by_key: dict[tuple[int, int], Train] = {}
    for train in trains:
        by_key[train.key] = train
    return list(by_key.values())


def flatten_segment_details(payloads: Iterable[Sequence[Mapping[str, Any]]]) -> list[dict]:
    """Flatten per-segment responses (lists of groups with a ``treni`` list)."""
    records = []
    for payload in payloads:
        for group in payload:
            records.extend(group["treni"])
    return records


def parse_station(raw: Mapping[str, Any]) -> Station:
    return Station(
        station_id=raw["codStazione"],
        name=raw["localita"]["nomeLungo"],
        city=raw["nomeCitta"],
        location=(raw["lat"], raw["lon"]),
    )


def parse_segment(raw: Mapping[str, Any]) -> Segment:
    return Segment(
        station_id_a=raw["nodoA"],
        station_id_b=raw["nodoB"],
        segment_id_ab=raw["trattaAB"],
        segment_id_ba=raw["trattaBA"],
        location_a=(raw["latitudineA"], raw["longitudineA"]),
        location_b=(raw["latitudineB"], raw["longitudineB"]),
        busy=raw["occupata"],
    )


def parse_train(raw: Mapping[str, Any]) -> Train:
    """Normalize one record of a ``dettagliTratta`` response."""
    return Train(
        departed=not raw["nonPartito"],
        arrived=raw["arrivato"],
        travelling=raw["circolante"],
        in_station=raw["inStazione"],
        departure_time=raw["dataPartenzaTreno"],
        segment_id=str(raw["tratta"]),
        region_id=raw["regione"],
        train_category=train_category(raw.get("categoria"), raw["compNumeroTreno"]),
        train_number=raw["numeroTreno"],
        changing_number=raw["haCambiNumero"],
        station_a=raw["origine"],
        station_id_a=raw["codOrigine"],
        station_b=raw["destinazione"],
        station_id_b=raw["codDestinazione"],
        travel_duration=parse_duration(raw["compDurata"]),
        delay=raw["ritardo"],
        latest_detection=raw.get("ultimoRilev"),
    )


def trains_from_records(records: Iterable[Mapping[str, Any]]) -> list[Train]:
    """Filter, normalize and deduplicate raw train records."""
    kept = (
        record
        for record in records
        if keep_train(record["arrivato"], not record["nonPartito"])
    )
    return dedupe_trains(parse_train(record) for record in kept)


def parse_autocomplete(text: str) -> list[TrainAutocompleteMatch]:
    """Parse the newline/pipe-delimited autocomplete body.

    Each line looks like ``3914 - ANCONA - 03/11/25|3914-S07113-1762124400000``.
    """
    matches = []
    for line in text.split("\n"):
        if not line.strip():
            continue
        label, code = line.split("|")[:2]
        codes = code.split("-")
        matches.append(
            TrainAutocompleteMatch(
                train_number=codes[0],
                station_a=label.split(" - ")[1],
                station_id_a=codes[1],
            )
        )
    return matches


def parse_canvas_stop(raw: Mapping[str, Any]) -> TrainStopInfo:
    """Normalize one element of a ``tratteCanvas`` response."""
    stop = raw["fermata"]
    expected_platform, actual_platform = select_platforms(stop, raw["first"])
    return TrainStopInfo(
        station_id=raw["id"],
        name=raw["stazione"],
        is_first_stop=raw["first"],
        is_last_stop=raw["last"],
        is_current_stop=bool(raw.get("stazioneCorrente")),
        expected_arrival=stop.get("arrivo_teorico"),
        actual_arrival=stop.get("arrivoReale"),
        expected_departure=stop.get("partenza_teorica"),
        actual_departure=stop.get("partenzaReale"),
        delay_at_arrival=stop.get("ritardoArrivo"),
        delay_at_departure=stop.get("ritardoPartenza"),
        expected_platform=expected_platform,
        actual_platform=actual_platform,
    )


def parse_progress_stops(stops: Sequence[Mapping[str, Any]]) -> list[TrainStopInfo]:
    """Normalize the ``fermate`` list of an ``andamentoTreno`` response."""
    markers = [stop.get("actualFermataType") for stop in stops]
    parsed = []
    for index, stop in enumerate(stops):
        is_first = stop["tipoFermata"] == FIRST_STOP_TYPE
        expected_platform, actual_platform = select_platforms(stop, is_first)
        actual_arrival = stop.get("arrivoReale")
        actual_departure = stop.get("partenzaReale")
        parsed.append(
            TrainStopInfo(
                station_id=stop["id"],
                name=stop["stazione"],
                is_first_stop=is_first,
                is_last_stop=stop["tipoFermata"] == LAST_STOP_TYPE,
                is_current_stop=is_current_stop(markers, index),
                expected_arrival=stop.get("arrivo_teorico"),
                actual_arrival=actual_arrival,
                expected_departure=stop.get("partenza_teorica"),
                actual_departure=actual_departure,
                delay_at_arrival=stop.get("ritardoArrivo") if actual_arrival else None,
                delay_at_departure=stop.get("ritardoPartenza") if actual_departure else None,
                expected_platform=expected_platform,
                actual_platform=actual_platform,
            )
        )
    return parsed


def parse_train_info(raw: Mapping[str, Any]) -> TrainInfo:
    """Normalize an ``andamentoTreno`` response."""
    station_name = raw.get("stazioneUltimoRilevamento")
    return TrainInfo(
        train_type=raw.get("tipoTreno"),
        suppressed_stops=raw.get("fermateSoppresse"),
        last_detection=raw.get("oraUltimoRilevamento") or None,
        last_detection_station_name=station_name if station_name != "--" else None,
        station_id_a=raw["idOrigine"],
        station_id_b=raw["idDestinazione"],
        name_a=raw["origine"],
        name_b=raw["destinazione"],
        has_arrived=raw["arrivato"],
        stops=parse_progress_stops(raw["fermate"]),
    )
