import pytest

from geo_multisearch.engine import SearchEngine
from geo_multisearch.errors import PayloadError, ProviderError
from geo_multisearch.models import SearchKind
from geo_multisearch.providers.dev import DevProvider
from geo_multisearch.allocator import color_for

from conftest import FakeProvider, zip_row


def _leaf_summary(engine):
    return {
        leaf.key: (dict(leaf.measures), len(leaf.search_ids))
        for leaf in engine.view.leaves
    }


def _mixed_engine():
    engine = SearchEngine(DevProvider())
    engine.search_radius(30.0, -97.0, 4)
    engine.search_polygon([[30.0, -97.05], [30.0, -96.95], [30.08, -96.95]])
    engine.search_hierarchy("TX", "Travis")
    return engine


def test_export_restore_round_trip_with_cached_leaves():
    source = _mixed_engine()
    payload = source.export()

    target = SearchEngine(DevProvider())
    report = target.restore(payload.model_dump(mode="json"))

    assert len(report.restored) == 3
    assert report.pending == [] and report.failed == {}
    assert _leaf_summary(target) == _leaf_summary(source)
    assert [e.kind for e in target.entries()] == [
        SearchKind.RADIUS,
        SearchKind.POLYGON,
        SearchKind.HIERARCHY,
    ]
    assert target.provider.calls == []


def test_export_restore_round_trip_with_refetch():
    source = _mixed_engine()
    payload = source.export(include_leaves=False)
    assert all(s.cached_leaves is None for f in payload.families.values() for s in f)

    target = SearchEngine(DevProvider())
    report = target.restore(payload)

    assert len(report.restored) == 3
    assert len(target.provider.calls) == 3
    assert _leaf_summary(target) == _leaf_summary(source)


def test_restore_renumbers_in_list_order_and_keeps_overrides():
    engine = SearchEngine(FakeProvider())
    payload = {
        "families": {
            "radius": [
                {"id": "x", "kind": "radius", "geometry": {"lat": 1, "lng": 1, "radius": 1},
                 "sequence": 7, "color": "#ffffff", "cached_leaves": []},
                {"id": "y", "kind": "radius", "geometry": {"lat": 2, "lng": 2, "radius": 1},
                 "sequence": 3, "settings": {"overlay_color_override": "#abcdef"},
                 "cached_leaves": []},
            ]
        }
    }

    engine.restore(payload)

    x, y = engine.entries(SearchKind.RADIUS)
    assert (x.id, x.sequence, x.overlay_color) == ("x", 1, color_for(1))
    assert (y.id, y.sequence, y.overlay_color) == ("y", 2, "#abcdef")
    assert engine.active_id == "x"


def test_restore_keeps_failed_entries_with_no_leaves():
    provider = FakeProvider([zip_row("1")])
    engine = SearchEngine(provider)
    payload = {
        "families": {
            "radius": [
                {"id": "ok", "kind": "radius", "geometry": {"lat": 1, "lng": 1, "radius": 1}},
            ],
            "hierarchy": [
                {"id": "bad", "kind": "hierarchy", "geometry": {"state": "TX"}},
            ],
        }
    }

    calls = []

    def flaky(kind, geometry):
        calls.append(kind)
        if str(kind) == "hierarchy":
            raise ProviderError("timeout")
        return [zip_row("1")]

    provider.search = flaky
    report = engine.restore(payload)

    assert len(calls) == 2
    assert sorted(report.restored) == ["bad", "ok"]
    assert list(report.failed) == ["bad"]
    assert engine.get("bad").result_count == 0
    assert engine.leaves("bad") == ()
    assert [leaf.key for leaf in engine.view.leaves] == ["1"]


def test_restore_without_refetch_marks_pending():
    provider = FakeProvider()
    engine = SearchEngine(provider)
    payload = {
        "families": {
            "polygon": [
                {"id": "p", "kind": "polygon", "geometry": {"points": [[0, 0], [0, 1], [1, 1]]}},
            ]
        }
    }

    report = engine.restore(payload, refetch=False)

    assert report.pending == ["p"]
    assert provider.calls == []
    assert engine.get("p").result_count == 0

    provider.push([zip_row("9")])
    engine.replay("p")
    assert [leaf.key for leaf in engine.view.leaves] == ["9"]


def test_restore_skips_invalid_and_drops_duplicates():
    engine = SearchEngine(FakeProvider())
    geom = {"lat": 1, "lng": 1, "radius": 1}
    payload = {
        "families": {
            "radius": [
                {"id": "a", "kind": "radius", "geometry": geom, "cached_leaves": []},
                {"id": "b", "kind": "radius", "geometry": dict(geom), "cached_leaves": []},
                {"id": "c", "kind": "radius", "geometry": {"lat": "x"}, "cached_leaves": []},
            ]
        }
    }

    report = engine.restore(payload)

    assert report.restored == ["a"]
    assert [s["id"] for s in report.skipped] == ["c", "b"]
    assert report.skipped[1]["reason"] == "duplicate signature"
    assert [e.id for e in engine.entries()] == ["a"]


def test_dropped_entries_are_not_reported_pending_or_failed(monkeypatch):
    monkeypatch.setenv("GMS_HISTORY_CAP", "1")
    from geo_multisearch.settings import reset_settings_cache

    reset_settings_cache()
    provider = FakeProvider()
    provider.fail = ProviderError("down")
    engine = SearchEngine(provider)
    geom = {"lat": 1, "lng": 1, "radius": 1}
    payload = {
        "families": {
            "radius": [
                {"id": "a", "kind": "radius", "geometry": geom},
                {"id": "b", "kind": "radius", "geometry": dict(geom)},
            ],
            "polygon": [
                {"id": "p", "kind": "polygon", "geometry": {"points": [[0, 0], [0, 1], [1, 1]]}},
                {"id": "q", "kind": "polygon", "geometry": {"points": [[0, 0], [0, 2], [2, 2]]}},
            ],
        }
    }

    deferred = engine.restore(payload, refetch=False)
    assert deferred.pending == ["a", "p"]
    assert {s["id"]: s["reason"] for s in deferred.skipped} == {
        "b": "history cap reached",
        "q": "history cap reached",
    }

    failed = engine.restore(payload)
    assert sorted(failed.failed) == ["a", "p"]
    assert [s["id"] for s in failed.skipped] == ["b", "q"]
    for search_id in deferred.pending:
        assert search_id in engine


def test_restore_parses_serialized_flag_strings():
    engine = SearchEngine(FakeProvider())
    payload = {
        "families": {
            "radius": [
                {"id": "r", "kind": "radius", "geometry": {"lat": 1, "lng": 1, "radius": 1},
                 "settings": {"show_overlay": "false", "show_markers": "0", "show_borders": "yes"},
                 "cached_leaves": []},
            ]
        }
    }

    engine.restore(payload)

    settings = engine.get("r").settings
    assert (settings.show_overlay, settings.show_markers, settings.show_borders) == (False, False, True)


def test_restore_maps_exclusions_focus_and_combine():
    engine = SearchEngine(FakeProvider())
    payload = {
        "combine": False,
        "active_id": "p",
        "excluded": ["r", "missing"],
        "families": {
            "radius": [
                {"id": "r", "kind": "radius", "geometry": {"lat": 1, "lng": 1, "radius": 1},
                 "cached_leaves": [zip_row("1")]},
            ],
            "polygon": [
                {"id": "p", "kind": "polygon", "geometry": {"points": [[0, 0], [0, 1], [1, 1]]},
                 "cached_leaves": [zip_row("2")]},
            ],
        },
    }

    engine.restore(payload)

    assert engine.combine is False
    assert engine.focus is SearchKind.POLYGON
    assert engine.active_id == "p"
    assert engine.excluded_ids() == ["r"]
    assert [leaf.key for leaf in engine.view.leaves] == ["2"]


def test_restore_replaces_previous_state(engine, fake_provider):
    engine.search_radius(10.0, 10.0, 1)
    engine.restore({"families": {}})
    assert engine.entries() == []
    assert engine.view.is_empty


def test_restore_rejects_malformed_payload(engine):
    with pytest.raises(PayloadError):
        engine.restore(["not", "an", "object"])
    with pytest.raises(PayloadError):
        engine.restore({"families": {"radius": [{"kind": "polygon", "geometry": {}}]}})
    with pytest.raises(PayloadError):
        engine.restore({"families": {"circle": []}})
