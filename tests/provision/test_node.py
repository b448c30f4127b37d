import logging

import pytest

from noderig.config.models import ChartServiceConfig, NodeConfig, PathsConfig, SoftwareDefinition
from noderig.errors import ErrorKind, configuration_error
from noderig.observers.jsonfile import JsonFileObserver
from noderig.provision.node import setup_node, upgrade_service
from noderig.provision.runner import default_observers, execute_workflow, provision
from noderig.observers.console import ConsoleObserver
from noderig.observers.logger import LoggerObserver
from noderig.software.installable import Installable
from noderig.workflow.provider import Provider
from noderig.workflow.report import Status


class FakeSoftware(Installable):
    def __init__(self, name, journal, fail_configure=False):
        self.name = name
        self.journal = journal
        self.fail_configure = fail_configure
        self.installed = False

    def is_installed(self, ctx):
        return self.installed

    def download(self, ctx):
        self.journal.append(f"download:{self.name}")

    def extract(self, ctx):
        self.journal.append(f"extract:{self.name}")

    def install(self, ctx):
        self.journal.append(f"install:{self.name}")
        self.installed = True

    def cleanup(self, ctx):
        self.journal.append(f"cleanup:{self.name}")

    def uninstall(self, ctx):
        self.journal.append(f"uninstall:{self.name}")
        self.installed = False

    def is_configured(self, ctx):
        return False

    def configure(self, ctx):
        if self.fail_configure:
            raise configuration_error(self.name, OSError("read-only"))
        self.journal.append(f"configure:{self.name}")

    def remove_configuration(self, ctx):
        self.journal.append(f"unconfigure:{self.name}")


def node(tmp_path):
    return NodeConfig(
        node_name="solo-1",
        paths=PathsConfig(bin_dir=str(tmp_path / "bin")),
        software=[
            SoftwareDefinition(name="helm", version="3.14.2", url="https://example.test/helm.tgz"),
            SoftwareDefinition(name="kind", version="0.22.0", url="https://example.test/kind", archive="binary"),
        ],
        services=[
            ChartServiceConfig(
                name="block-node", release="block-node", chart="c", version="0.15.0", namespace="bn"
            )
        ],
    )


def test_setup_node_structure(tmp_path):
    wf = setup_node(node(tmp_path), self_check=True).build()

    assert wf.id == "setup-node-solo-1"
    assert [s.id for s in wf.steps] == [
        "check-noderig-installation",
        "setup-helm",
        "setup-kind",
        "setup-block-node",
    ]
    assert [s.id for s in wf.steps[1].steps] == ["install-helm", "configure-helm"]
    assert [s.id for s in wf.steps[3].steps] == [
        "setup-storage",
        "create-namespace",
        "create-persistent-volumes",
        "install-chart",
        "annotate-service",
        "wait-for-ready",
    ]


def test_upgrade_service_structure(tmp_path):
    wf = upgrade_service(node(tmp_path), "block-node").build()
    assert wf.id == "upgrade-block-node"
    assert [s.id for s in wf.steps] == ["upgrade-chart", "wait-for-ready"]


def software_only(tmp_path):
    cfg = node(tmp_path)
    return cfg.model_copy(update={"services": []})


def test_execute_workflow_failure_rolls_back_across_software(tmp_path):
    journal = []
    installers = {
        "helm": Provider.of(FakeSoftware("helm", journal)),
        "kind": Provider.of(FakeSoftware("kind", journal, fail_configure=True)),
    }
    events = tmp_path / "events.jsonl"
    observers = default_observers(logging.getLogger("noderig-test"), events)

    report = execute_workflow(
        setup_node(software_only(tmp_path), installers=installers),
        observers=observers,
        node_name="solo-1",
        run_id="run-1",
    )

    assert report.status is Status.FAILED
    assert report.error.kind is ErrorKind.CONFIGURATION
    assert journal[-3:] == ["uninstall:kind", "unconfigure:helm", "uninstall:helm"]
    assert report.child("setup-helm").rollback.status is Status.SUCCESS

    records = list(JsonFileObserver(events).events(run_id="run-1"))
    summary = records[-1]
    assert summary["type"] == "WorkflowSummary"
    assert summary["workflow_id"] == "setup-node-solo-1"
    assert summary["status"] == "failed"
    assert summary["rolled_back"] == 1
    assert summary["failed"] == 1
    assert any(r["type"] == "StepFailed" and r["step_id"] == "configure-kind" for r in records)


def test_execute_workflow_success(tmp_path):
    journal = []
    installers = {n: Provider.of(FakeSoftware(n, journal)) for n in ("helm", "kind")}

    report = execute_workflow(setup_node(software_only(tmp_path), installers=installers))

    assert report.status is Status.SUCCESS
    assert journal == [
        "download:helm", "extract:helm", "install:helm", "cleanup:helm", "configure:helm",
        "download:kind", "extract:kind", "install:kind", "cleanup:kind", "configure:kind",
    ]


def test_default_observers(tmp_path):
    logger = logging.getLogger("noderig-test")
    assert [type(o) for o in default_observers(logger)] == [LoggerObserver]
    assert [type(o) for o in default_observers(logger, tmp_path / "e.jsonl", console=True)] == [
        LoggerObserver,
        ConsoleObserver,
        JsonFileObserver,
    ]


@pytest.fixture
def restore_logger():
    logger = logging.getLogger("noderig")
    yield
    for h in list(logger.handlers):
        h.close()
        logger.removeHandler(h)
    logger.propagate = True


def test_provision_writes_log_and_events(tmp_path, capsys, restore_logger):
    journal = []
    installers = {n: Provider.of(FakeSoftware(n, journal)) for n in ("helm", "kind")}
    cfg = software_only(tmp_path)
    cfg = cfg.model_copy(update={"paths": cfg.paths.model_copy(update={"log_dir": str(tmp_path / "logs")})})

    report = provision(cfg, setup_node(cfg, installers=installers), console_events=True)

    assert report.status is Status.SUCCESS
    logs = list((tmp_path / "logs").glob("noderig-*.log"))
    assert len(logs) == 1
    assert "setup-node-solo-1 SUCCESS" in logs[0].read_text()

    records = list(JsonFileObserver(tmp_path / "logs" / "events.jsonl").events())
    assert {r["env"] for r in records} == {"solo-1"}
    assert len({r["run_id"] for r in records}) == 1
    assert "StepStarted node=solo-1" in capsys.readouterr().out
