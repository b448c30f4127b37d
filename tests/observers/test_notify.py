from noderig.errors import installation_error
from noderig.observers import notify
from noderig.observers.dispatcher import EventBus
from noderig.observers.events import StepCompleted, StepFailed, StepStarted, new_ctx
from noderig.observers.jsonfile import JsonFileObserver
from noderig.workflow.report import failure, success


class Collect:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


class Broken:
    def notify(self, event):
        raise RuntimeError("observer down")


def test_broken_observer_does_not_starve_others():
    good = Collect()
    bus = EventBus([Broken(), good])
    n = notify.Notifier(bus, new_ctx(env="solo-1", context="kind-solo", run_id="r1"))

    n.step_start("install-helm")

    assert len(good.events) == 1
    ev = good.events[0]
    assert isinstance(ev, StepStarted)
    assert (ev.step_id, ev.run_id, ev.env, ev.context) == ("install-helm", "r1", "solo-1", "kind-solo")


def test_failure_event_carries_kind_and_metadata():
    good = Collect()
    n = notify.Notifier(EventBus([good]))
    err = installation_error("helm", OSError("disk full"))

    n.step_failure("install-helm", failure("install-helm", err, metadata={"DownloadedByThisStep": "true"}))
    n.step_completion("configure-helm", success("configure-helm"))

    failed, completed = good.events
    assert isinstance(failed, StepFailed)
    assert failed.error_kind == "installation"
    assert failed.metadata == {"DownloadedByThisStep": "true"}
    assert isinstance(completed, StepCompleted)
    assert completed.status == "success"


def test_json_file_round_trip(tmp_path):
    path = tmp_path / "events" / "run.jsonl"
    obs = JsonFileObserver(path)
    n1 = notify.Notifier(EventBus([obs]), new_ctx(env="n", context=None, run_id="one"))
    n2 = notify.Notifier(EventBus([obs]), new_ctx(env="n", context=None, run_id="two"))

    n1.step_start("a")
    n2.step_start("b")
    n1.rollback_start("a")

    records = list(obs.events(run_id="one"))
    assert [(r["type"], r["step_id"]) for r in records] == [
        ("StepStarted", "a"),
        ("RollbackStarted", "a"),
    ]
    assert len(list(obs.events())) == 3


def test_set_default_returns_previous():
    mine = notify.Notifier()
    previous = notify.set_default(mine)
    try:
        assert notify.get() is mine
    finally:
        notify.set_default(previous)
    assert notify.get() is previous
