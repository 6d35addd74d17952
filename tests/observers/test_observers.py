import json
import logging

from rescueboot.logging.log import host_logger
from rescueboot.observers.dispatcher import EventBus
from rescueboot.observers.events import ActionFailed, ActionStarted, RunCompleted, new_ctx, stamp
from rescueboot.observers.jsonfile import JsonFileObserver
from rescueboot.observers.logger import LoggerObserver


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)


class Broken:
    def notify(self, ev):
        raise RuntimeError("observer down")


def test_bus_keeps_going_when_an_observer_fails():
    cap = Capture()
    bus = EventBus([Broken(), cap])
    ev = RunCompleted(ok=1, failed=0, discovery_token="t", **stamp(new_ctx("run-1")))
    bus.emit(ev)
    assert cap.events == [ev]


def test_json_file_observer_appends_lines(tmp_path):
    path = tmp_path / "events" / "run.jsonl"
    obs = JsonFileObserver(path)
    ctx = new_ctx("run-1")
    obs.notify(ActionStarted(host="10.0.0.1", action="reset", index=2, **stamp(ctx)))
    obs.notify(RunCompleted(ok=1, failed=0, discovery_token="t", **stamp(ctx)))

    lines = [json.loads(l) for l in path.read_text().splitlines()]
    assert [l["type"] for l in lines] == ["ActionStarted", "RunCompleted"]
    assert lines[0]["phase"] == "START"
    assert {l["run_id"] for l in lines} == {"run-1"}


def test_host_logger_prefixes_host_and_action(caplog):
    caplog.set_level(logging.INFO, logger="rescueboot.test")
    log = host_logger("10.0.0.1", logging.getLogger("rescueboot.test"))
    log.for_action("reset").info("%-20s", "START")
    assert caplog.records[-1].getMessage().startswith("[10.0.0.1       ][reset] START")


def test_logger_observer_raises_level_for_failures(caplog):
    caplog.set_level(logging.DEBUG, logger="rescueboot.events")
    obs = LoggerObserver(logging.getLogger("rescueboot.events"))
    ctx = new_ctx("run-1")
    obs.notify(ActionStarted(host="10.0.0.1", action="reset", index=2, **stamp(ctx)))
    obs.notify(ActionFailed(host="10.0.0.1", action="reset", kind="provisioning", error="boom", **stamp(ctx)))

    levels = [(r.levelno, r.getMessage().split(":")[0]) for r in caplog.records]
    assert levels == [(logging.DEBUG, "[EVENT] ActionStarted"), (logging.WARNING, "[EVENT] ActionFailed")]
