import json
import math

import pytest

from buffon import DecodeError, EstimatorState, HistoryPoint, InvalidParameter, SimulationParameters, Snapshot
from buffon.snapshot import SNAPSHOT_VERSION, decode, dumps, encode, from_dict, loads, subsample, to_dict


@pytest.fixture
def history():
    return [HistoryPoint(trial_index=10 * (i + 1), estimate=3.0 + i / 100, crossings=3 * (i + 1)) for i in range(35)]


@pytest.fixture
def snap(params, history):
    return encode(params, 250.0, EstimatorState(400, 127), history, saved_at="2024-03-14T15:09:26+00:00")


@pytest.fixture
def document(snap):
    return to_dict(snap)


class TestEncode:
    """Test capturing state"""

    def test_fields(self, snap):
        assert snap.needle_length == 1.0
        assert snap.line_spacing == 2.0
        assert snap.rate == 250.0
        assert snap.total_trials == 400
        assert snap.total_crossings == 127
        assert snap.version == SNAPSHOT_VERSION

    def test_history_every_tenth(self, snap, history):
        assert snap.history == tuple(history[i] for i in (0, 10, 20, 30))

    def test_custom_stride(self, params, history):
        s = encode(params, 100.0, EstimatorState(400, 127), history, stride=1)
        assert len(s.history) == len(history)

    def test_saved_at_defaults_to_now(self, params):
        s = encode(params, 100.0, EstimatorState(), [])
        assert s.saved_at is not None

    def test_subsample_rejects_bad_stride(self):
        with pytest.raises(InvalidParameter):
            subsample([], 0)


class TestDecode:
    """Test restoring state"""

    def test_round_trip(self, snap, params):
        restored = decode(snap)
        assert restored.params == params
        assert restored.rate == 250.0
        assert restored.state == EstimatorState(400, 127)
        assert restored.history == snap.history
        assert restored.saved_at == snap.saved_at

    def test_round_trip_through_json(self, snap):
        restored = decode(loads(dumps(snap)))
        assert restored.state == EstimatorState(400, 127)
        assert restored.params == SimulationParameters(1.0, 2.0)
        assert len(restored.history) == len(snap.history)

    def test_accepts_mapping(self, document):
        assert decode(document).state.total_trials == 400

    def test_none_is_error(self):
        with pytest.raises(DecodeError, match="no snapshot"):
            decode(None)

    def test_wrong_type_is_error(self):
        with pytest.raises(DecodeError):
            decode("not a snapshot")

    def test_crossings_exceed_trials(self):
        bad = Snapshot(1.0, 2.0, 100.0, total_trials=5, total_crossings=6)
        with pytest.raises(DecodeError, match="exceeds"):
            decode(bad)

    def test_invalid_geometry(self):
        with pytest.raises(DecodeError, match="needle_length"):
            decode(Snapshot(0.0, 2.0, 100.0, 0, 0))

    def test_invalid_rate(self):
        with pytest.raises(DecodeError, match="rate"):
            decode(Snapshot(1.0, 2.0, -5.0, 0, 0))

    def test_unsupported_version(self):
        with pytest.raises(DecodeError, match="version"):
            decode(Snapshot(1.0, 2.0, 100.0, 0, 0, version=99))

    def test_history_out_of_order(self):
        pts = (HistoryPoint(20, 3.1, 5), HistoryPoint(10, 3.2, 3))
        with pytest.raises(DecodeError, match="ordered"):
            decode(Snapshot(1.0, 2.0, 100.0, 30, 9, history=pts))

    def test_history_beyond_trial_count(self):
        pts = (HistoryPoint(50, 3.1, 5),)
        with pytest.raises(DecodeError, match="beyond"):
            decode(Snapshot(1.0, 2.0, 100.0, 30, 9, history=pts))

    @pytest.mark.parametrize("history", [None, 5, "points"])
    def test_history_not_a_sequence(self, history):
        with pytest.raises(DecodeError, match="list"):
            decode(Snapshot(1.0, 2.0, 100.0, 0, 0, history=history))

    def test_count_too_large(self):
        with pytest.raises(DecodeError, match="largest"):
            decode(Snapshot(1.0, 2.0, 100.0, 10**400, 0))


class TestDocument:
    """Test the JSON-compatible document layer"""

    def test_keys(self, document):
        assert set(document) == {
            "version", "needleLength", "lineSpacing", "speed",
            "totalThrows", "crossings", "history", "savedAt",
        }
        assert document["history"][0] == {"throws": 10, "crossings": 3, "pi": 3.0}

    def test_document_is_json_serializable(self, document):
        assert json.loads(json.dumps(document)) == document

    @pytest.mark.parametrize("key", ["needleLength", "lineSpacing", "speed", "totalThrows", "crossings"])
    def test_missing_required_field(self, document, key):
        """Required numbers are never filled in with defaults"""
        del document[key]
        with pytest.raises(DecodeError, match=key):
            from_dict(document)

    @pytest.mark.parametrize("key", ["needleLength", "totalThrows"])
    def test_null_required_field(self, document, key):
        document[key] = None
        with pytest.raises(DecodeError, match=key):
            from_dict(document)

    @pytest.mark.parametrize(
        ("key", "value"),
        [
            ("needleLength", "1.0"),
            ("totalThrows", 1.5),
            ("totalThrows", -1),
            ("crossings", True),
            ("speed", float("nan")),
            ("lineSpacing", float("inf")),
        ],
    )
    def test_wrong_types(self, document, key, value):
        document[key] = value
        with pytest.raises(DecodeError):
            from_dict(document)

    def test_optional_fields(self, document):
        for key in ("history", "savedAt", "version"):
            del document[key]
        s = from_dict(document)
        assert s.history == ()
        assert s.saved_at is None
        assert s.version == SNAPSHOT_VERSION

    @pytest.mark.parametrize("key", ["needleLength", "lineSpacing", "speed"])
    def test_out_of_range_number(self, document, key):
        document[key] = 10**400
        with pytest.raises(DecodeError, match=key):
            decode(from_dict(document))

    def test_integral_floats_accepted(self, document):
        document["totalThrows"] = 400.0
        assert from_dict(document).total_trials == 400

    def test_bad_history_entry(self, document):
        document["history"] = [{"throws": 10, "pi": 3.1}]
        with pytest.raises(DecodeError, match="crossings"):
            from_dict(document)

    def test_history_not_a_list(self, document):
        document["history"] = {"throws": 10}
        with pytest.raises(DecodeError, match="list"):
            from_dict(document)

    def test_not_a_mapping(self):
        with pytest.raises(DecodeError):
            from_dict([1, 2, 3])


class TestText:
    """Test the JSON text layer"""

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_absent_text(self, text):
        with pytest.raises(DecodeError, match="no saved snapshot"):
            loads(text)

    def test_corrupt_text(self):
        with pytest.raises(DecodeError, match="not valid JSON"):
            loads('{"needleLength": 1.0,')

    def test_nan_in_text(self, document):
        document["speed"] = math.nan
        with pytest.raises(DecodeError):
            loads(json.dumps(document))

    def test_oversized_integer_in_text(self):
        text = (
            '{"needleLength": 1' + "0" * 400
            + ', "lineSpacing": 2.0, "speed": 100, "totalThrows": 0, "crossings": 0}'
        )
        with pytest.raises(DecodeError, match="finite"):
            decode(loads(text))

    def test_indent(self, snap):
        assert "\n" in dumps(snap, indent=2)
