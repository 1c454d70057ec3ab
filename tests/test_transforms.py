"""Tests for payload normalization and heuristics."""

import pytest
from pydantic import ValidationError

from viaggiatreno_mcp.models import Segment
from viaggiatreno_mcp.transforms import (
    dedupe_trains,
    flatten_segment_details,
    is_current_stop,
    keep_train,
    parse_autocomplete,
    parse_canvas_stop,
    parse_duration,
    parse_progress_stops,
    parse_segment,
    parse_station,
    parse_train,
    parse_train_info,
    select_platforms,
    train_category,
    trains_from_records,
    unique_segments,
)


def raw_train(**overrides) -> dict:
    """A dettagliTratta train record as the API returns it."""
    record = {
        "nonPartito": False,
        "arrivato": False,
        "circolante": True,
        "inStazione": False,
        "dataPartenzaTreno": 1762124400000,
        "tratta": 4,
        "regione": 3,
        "categoria": "REG",
        "compNumeroTreno": "REG 3914",
        "numeroTreno": 3914,
        "haCambiNumero": False,
        "origine": "ANCONA",
        "codOrigine": "S07113",
        "destinazione": "PESARO",
        "codDestinazione": "S07104",
        "compDurata": "01:05",
        "ritardo": 4,
        "ultimoRilev": 1762126800000,
    }
    record.update(overrides)
    return record


def make_segment(ab: int, ba: int, busy: bool = True, station_a: str = "S01700") -> Segment:
    return Segment(
        station_id_a=station_a,
        station_id_b="S01701",
        segment_id_ab=ab,
        segment_id_ba=ba,
        location_a=(45.48, 9.2),
        location_b=(45.49, 9.21),
        busy=busy,
    )


class TestHeuristics:
    """Test the individually swappable field derivations."""

    def test_parse_duration(self):
        assert parse_duration("02:15") == 135

    def test_parse_duration_zero(self):
        assert parse_duration("00:00") == 0

    def test_parse_duration_malformed(self):
        with pytest.raises(ValueError):
            parse_duration("2h15")

    def test_category_from_field(self):
        assert train_category("IC", "IC 583") == "IC"

    def test_category_from_formatted_number(self):
        """FR trains omit the category and prefix it with a space."""
        assert train_category("", " FR 9516") == "FR"

    def test_category_missing_field(self):
        assert train_category(None, "EC 35") == "EC"

    def test_keep_train_truth_table(self):
        assert keep_train(arrived=True, departed=True) is False
        assert keep_train(arrived=False, departed=False) is True
        assert keep_train(arrived=True, departed=False) is True
        assert keep_train(arrived=False, departed=True) is True


class TestCurrentStop:
    """Test current-stop inference from actualFermataType markers."""

    def test_middle_stop_is_current(self):
        markers = [0, 1, 0]
        assert is_current_stop(markers, 1) is True
        assert is_current_stop(markers, 0) is False
        assert is_current_stop(markers, 2) is False

    def test_stop_followed_by_sentinel_is_not_current(self):
        markers = [1, 1, 0]
        assert is_current_stop(markers, 0) is False
        assert is_current_stop(markers, 1) is True

    def test_last_stop_with_sentinel_is_current(self):
        markers = [1, 1, 1]
        assert is_current_stop(markers, 2) is True

    def test_single_stop(self):
        assert is_current_stop([1], 0) is True

    def test_next_stop_with_other_marker(self):
        """Any marker different from the sentinel ends the run."""
        assert is_current_stop([1, 2], 0) is True
        assert is_current_stop([1, None], 0) is True

    def test_custom_sentinel(self):
        assert is_current_stop(["X", "Y"], 0, sentinel="X") is True


class TestPlatforms:
    """Test platform selection for first and other stops."""

    stop = {
        "binarioProgrammatoPartenzaDescrizione": "3",
        "binarioEffettivoPartenzaDescrizione": "4",
        "binarioProgrammatoArrivoDescrizione": "7",
        "binarioEffettivoArrivoDescrizione": None,
    }

    def test_first_stop_reads_departure_platforms(self):
        assert select_platforms(self.stop, True) == ("3", "4")

    def test_other_stops_read_arrival_platforms(self):
        assert select_platforms(self.stop, False) == ("7", None)


class TestSegments:
    """Test segment normalization and unique collapsing."""

    def test_parse_segment(self):
        raw = {
            "nodoA": "S01700",
            "nodoB": "S01645",
            "trattaAB": 120,
            "trattaBA": 121,
            "latitudineA": 45.48,
            "longitudineA": 9.2,
            "latitudineB": 45.52,
            "longitudineB": 9.3,
            "occupata": True,
        }
        segment = parse_segment(raw)
        assert segment.station_id_a == "S01700"
        assert segment.segment_id_ab == 120
        assert segment.location_b == (45.52, 9.3)
        assert segment.busy is True
        assert segment.unique_key == "120-121"

    def test_unique_segments_one_per_pair(self):
        segments = [
            make_segment(1, 2, station_a="S1"),
            make_segment(3, 4),
            make_segment(1, 2, station_a="S2"),
        ]
        result = unique_segments(segments)
        assert [s.unique_key for s in result] == ["1-2", "3-4"]

    def test_unique_segments_last_wins(self):
        segments = [make_segment(1, 2, station_a="S1"), make_segment(1, 2, station_a="S2")]
        assert unique_segments(segments)[0].station_id_a == "S2"

    def test_reverse_pair_is_a_distinct_key(self):
        segments = [make_segment(1, 2), make_segment(2, 1)]
        assert len(unique_segments(segments)) == 2

    def test_segment_is_immutable(self):
        segment = make_segment(1, 2)
        with pytest.raises(ValidationError):
            segment.busy = False


class TestTrains:
    """Test train normalization, filtering and deduplication."""

    def test_parse_train(self):
        train = parse_train(raw_train())
        assert train.departed is True
        assert train.arrived is False
        assert train.segment_id == "4"
        assert train.train_category == "REG"
        assert train.travel_duration == 65
        assert train.key == (3914, 3)

    def test_parse_train_fr_quirk(self):
        train = parse_train(raw_train(categoria="", compNumeroTreno=" FR 9516", numeroTreno=9516))
        assert train.train_category == "FR"

    def test_parse_train_without_detection(self):
        train = parse_train(raw_train(ultimoRilev=None))
        assert train.latest_detection is None

    def test_parse_train_missing_field(self):
        record = raw_train()
        del record["compDurata"]
        with pytest.raises(KeyError):
            parse_train(record)

    def test_flatten_segment_details(self):
        payloads = [
            [{"treni": [raw_train(numeroTreno=1)]}, {"treni": [raw_train(numeroTreno=2)]}],
            [],
            [{"treni": [raw_train(numeroTreno=3)]}],
        ]
        records = flatten_segment_details(payloads)
        assert [r["numeroTreno"] for r in records] == [1, 2, 3]

    def test_completed_trains_are_filtered(self):
        records = [
            # arrived and departed
            raw_train(numeroTreno=1, arrivato=True, nonPartito=False),
            # neither arrived nor departed
            raw_train(numeroTreno=2, arrivato=False, nonPartito=True),
            # arrived, not departed
            raw_train(numeroTreno=3, arrivato=True, nonPartito=True),
        ]
        numbers = [t.train_number for t in trains_from_records(records)]
        assert numbers == [2, 3]

    def test_same_number_different_regions_kept(self):
        records = [
            raw_train(numeroTreno=9516, regione=3),
            raw_train(numeroTreno=9516, regione=7),
        ]
        trains = trains_from_records(records)
        assert sorted(t.region_id for t in trains) == [3, 7]

    def test_same_key_deduplicated_last_wins(self):
        first = parse_train(raw_train(numeroTreno=9516, regione=3, ritardo=1))
        second = parse_train(raw_train(numeroTreno=9516, regione=3, ritardo=9))
        trains = dedupe_trains([first, second])
        assert len(trains) == 1
        assert trains[0].delay == 9


class TestAutocomplete:
    """Test parsing of the text autocomplete body."""

    def test_parse_single_line(self):
        matches = parse_autocomplete("3914 - ANCONA - 03/11/25|3914-S07113-1762124400000\n")
        assert len(matches) == 1
        assert matches[0].train_number == 3914
        assert matches[0].station_a == "ANCONA"
        assert matches[0].station_id_a == "S07113"

    def test_parse_multiple_lines_skips_blanks(self):
        body = (
            "9516 - MILANO CENTRALE - 03/11/25|9516-S01700-1762124400000\n"
            "\n"
            "9516 - TORINO PORTA NUOVA - 03/11/25|9516-S00219-1762124400000\n"
        )
        matches = parse_autocomplete(body)
        assert [m.station_id_a for m in matches] == ["S01700", "S00219"]

    def test_parse_empty_body(self):
        assert parse_autocomplete("") == []

    def test_parse_malformed_line(self):
        with pytest.raises(ValueError):
            parse_autocomplete("garbage without separators")


class TestStops:
    """Test normalization of stop lists."""

    def test_parse_station(self):
        raw = {
            "codStazione": "S01700",
            "localita": {"nomeLungo": "MILANO CENTRALE"},
            "nomeCitta": "Milano",
            "lat": 45.486347,
            "lon": 9.204528,
        }
        station = parse_station(raw)
        assert station.station_id == "S01700"
        assert station.name == "MILANO CENTRALE"
        assert station.location == (45.486347, 9.204528)

    def test_parse_canvas_stop_first(self):
        raw = {
            "id": "S07113",
            "stazione": "ANCONA",
            "first": True,
            "last": False,
            "stazioneCorrente": False,
            "fermata": {
                "partenza_teorica": 1762124400000,
                "partenzaReale": 1762124460000,
                "ritardoPartenza": 1,
                "binarioProgrammatoPartenzaDescrizione": "2",
                "binarioEffettivoPartenzaDescrizione": "3",
                "binarioProgrammatoArrivoDescrizione": "9",
            },
        }
        stop = parse_canvas_stop(raw)
        assert stop.is_first_stop is True
        assert stop.expected_platform == "2"
        assert stop.actual_platform == "3"
        assert stop.delay_at_departure == 1
        assert stop.expected_arrival is None

    def test_progress_stops(self):
        stops = [
            {"id": "S1", "stazione": "A", "tipoFermata": "P", "actualFermataType": 1,
             "partenzaReale": 1000, "ritardoPartenza": 2, "ritardoArrivo": 0,
             "binarioProgrammatoPartenzaDescrizione": "1"},
            {"id": "S2", "stazione": "B", "tipoFermata": "F", "actualFermataType": 1,
             "arrivoReale": 2000, "ritardoArrivo": 3, "ritardoPartenza": 0,
             "binarioProgrammatoArrivoDescrizione": "5"},
            {"id": "S3", "stazione": "C", "tipoFermata": "A", "actualFermataType": 0,
             "ritardoArrivo": 0, "binarioProgrammatoArrivoDescrizione": "8"},
        ]
        parsed = parse_progress_stops(stops)
        assert [s.is_current_stop for s in parsed] == [False, True, False]
        assert parsed[0].is_first_stop and parsed[2].is_last_stop
        assert parsed[0].expected_platform == "1"
        assert parsed[1].expected_platform == "5"
        # delays only reported once the stop has actually happened
        assert parsed[0].delay_at_departure == 2
        assert parsed[0].delay_at_arrival is None
        assert parsed[1].delay_at_arrival == 3
        assert parsed[2].delay_at_arrival is None

    def test_train_info_envelope(self):
        raw = {
            "tipoTreno": "PG",
            "fermateSoppresse": [],
            "oraUltimoRilevamento": None,
            "stazioneUltimoRilevamento": "--",
            "idOrigine": "S07113",
            "idDestinazione": "S07104",
            "origine": "ANCONA",
            "destinazione": "PESARO",
            "arrivato": False,
            "fermate": [
                {"id": "S07113", "stazione": "ANCONA", "tipoFermata": "P", "actualFermataType": 1},
            ],
        }
        info = parse_train_info(raw)
        assert info.last_detection is None
        assert info.last_detection_station_name is None
        assert info.current_stop.station_id == "S07113"
