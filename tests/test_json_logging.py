import json
import logging

from geo_multisearch.log import configure_logging, log_event


def _json_lines(text):
    return [json.loads(line) for line in text.splitlines() if line.strip()]


def test_log_event_emits_one_json_object_per_line(capsys):
    configure_logging("INFO", json_lines=True)

    log_event(logging.getLogger("gms.test"), "search.inserted", kind="radius", sequence=1)
    logging.getLogger("gms.test").info("plain message")

    events = _json_lines(capsys.readouterr().out)
    assert events[0]["event"] == "search.inserted"
    assert events[0]["kind"] == "radius"
    assert "ts" in events[0]
    assert events[1]["message"] == "plain message"
    assert events[1]["logger"] == "gms.test"


def test_engine_events_are_logged(capsys, engine, fake_provider):
    configure_logging("DEBUG", json_lines=True)

    engine.search_radius(40.0, -74.0, 1)
    engine.search_radius(40.0, -74.0, 1)
    engine.remove(engine.entries()[0].id)

    names = [e.get("event") for e in _json_lines(capsys.readouterr().out)]
    assert "search.inserted" in names
    assert "search.replaced" in names
    assert "search.removed" in names
    assert "rebuild" in names


def test_level_filters_events(capsys):
    configure_logging("WARNING", json_lines=True)
    log_event(logging.getLogger("gms.test"), "quiet")
    log_event(logging.getLogger("gms.test"), "loud", logging.WARNING)

    events = _json_lines(capsys.readouterr().out)
    assert [e["event"] for e in events] == ["loud"]
