import json
from datetime import datetime, timezone

import pytest

from lima.hostevents import Event, Status, watch

BEGIN = datetime(2020, 1, 1, tzinfo=timezone.utc)


def test_status_omits_zero_fields():
    assert Status(exiting=True).to_dict() == {"exiting": True}


def test_event_round_trip():
    ev = Event(
        time=datetime(2022, 3, 4, 5, 6, 7, tzinfo=timezone.utc),
        status=Status(running=True, degraded=True, errors=["boom"], ssh_local_port=60022),
    )
    assert Event.from_dict(json.loads(json.dumps(ev.to_dict()))) == ev


def test_event_zero_time_round_trip():
    ev = Event()
    assert Event.from_dict(ev.to_dict()) == ev


def _write(path, lines):
    path.write_text("".join(line + "\n" for line in lines))


def test_watch_stops_on_exiting(tmp_path):
    out, err = tmp_path / "out.log", tmp_path / "err.log"
    _write(out, [
        json.dumps(Event(status=Status(ssh_local_port=60022)).to_dict()),
        "",
        json.dumps(Event(status=Status(exiting=True)).to_dict()),
    ])
    _write(err, [json.dumps({"level": "info", "msg": "hello", "time": "2022-01-01T00:00:00Z"})])
    seen = []

    def on_event(ev):
        seen.append(ev)
        return ev.status.exiting

    assert watch(str(out), str(err), BEGIN, on_event, timeout=5) is True
    assert [e.status.ssh_local_port for e in seen] == [60022, 0]


def test_watch_times_out(tmp_path):
    out, err = tmp_path / "out.log", tmp_path / "err.log"
    _write(out, [json.dumps(Event(status=Status(running=True)).to_dict())])
    _write(err, [])
    seen = []
    assert watch(str(out), str(err), BEGIN, lambda ev: seen.append(ev) or False, timeout=0.3) is False
    assert len(seen) == 1 and seen[0].status.running


def test_watch_requires_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        watch(str(tmp_path / "no"), str(tmp_path / "no2"), BEGIN, lambda ev: True, timeout=0.1)


def test_watch_bad_json(tmp_path):
    out, err = tmp_path / "out.log", tmp_path / "err.log"
    _write(out, ["{not json"])
    _write(err, [])
    with pytest.raises(ValueError):
        watch(str(out), str(err), BEGIN, lambda ev: True, timeout=1)