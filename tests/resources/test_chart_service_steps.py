from noderig.errors import ErrorKind
from noderig.migration.migration import MigrationManager
from noderig.observers.jsonfile import JsonFileObserver
from noderig.provision.runner import execute_workflow
from noderig.steps.chart_service import setup_chart_service, upgrade_chart_service
from noderig.workflow import keys
from noderig.workflow.context import ExecutionContext
from noderig.workflow.provider import Provider
from noderig.workflow.report import Status


def run(builder):
    return builder.build().execute(ExecutionContext())


# ------------------------- setup -------------------------

def test_setup_fresh(service, fake):
    report = run(setup_chart_service(service, Provider.of(fake)))

    assert report.status is Status.SUCCESS
    assert fake.journal == [
        "setup_storage:archive:live",
        "create_namespace",
        "create_persistent_volumes:archive:live",
        "install_chart",
        "annotate_service",
        "wait_for_pod_ready",
    ]
    assert report.child("install-chart").flag(keys.INSTALLED_BY_THIS_STEP)
    assert report.child("wait-for-ready").flag(keys.IS_READY)


def test_setup_rerun_skips(service, fake):
    run(setup_chart_service(service, Provider.of(fake)))
    fake.journal.clear()

    report = run(setup_chart_service(service, Provider.of(fake)))

    assert report.status is Status.SUCCESS
    assert report.child("create-namespace").flag(keys.ALREADY_CONFIGURED)
    assert report.child("create-persistent-volumes").flag(keys.ALREADY_CONFIGURED)
    assert report.child("install-chart").flag(keys.ALREADY_INSTALLED)
    assert "install_chart" not in fake.journal


def test_setup_failure_tears_down_in_reverse(service, fake):
    fake.fail_on = {"wait_for_pod_ready"}

    report = run(setup_chart_service(service, Provider.of(fake)))

    assert report.status is Status.FAILED
    assert report.error.kind is ErrorKind.ILLEGAL_STATE
    assert fake.journal[-3:] == [
        "uninstall_chart",
        "delete_persistent_volumes:archive:live",
        "delete_namespace",
    ]
    assert report.child("setup-storage").rollback.status is Status.SKIPPED
    assert report.child("install-chart").rollback.status is Status.SUCCESS
    assert not fake.namespace and not fake.pvs and fake.version is None


def test_preexisting_namespace_survives_rollback(service, fake):
    fake.namespace = True
    fake.fail_on = {"install_chart"}

    report = run(setup_chart_service(service, Provider.of(fake)))

    assert report.status is Status.FAILED
    assert report.child("install-chart").rollback.status is Status.SKIPPED
    assert report.child("create-namespace").rollback.status is Status.SKIPPED
    assert "delete_namespace" not in fake.journal
    assert "delete_persistent_volumes:archive:live" in fake.journal
    assert fake.namespace


# ------------------------- upgrade -------------------------

def installed(fake, version, revision=1, values=None):
    fake.namespace = True
    fake.pvs = {"live"}
    fake.version = version
    fake.revision = revision
    fake.values = {"replicas": 1} if values is None else values


def test_upgrade_requires_installed_release(service, fake):
    report = run(upgrade_chart_service(service, Provider.of(fake)))

    assert report.status is Status.FAILED
    assert report.error.kind is ErrorKind.ILLEGAL_STATE
    assert "setup" in report.error.resolution
    assert fake.journal == []


def test_upgrade_noop_when_current(service, fake):
    installed(fake, "0.15.0")

    report = run(upgrade_chart_service(service, Provider.of(fake)))

    assert report.status is Status.SUCCESS
    upgrade = report.child("upgrade-chart")
    assert upgrade.status is Status.SKIPPED
    assert upgrade.flag(keys.ALREADY_CONFIGURED)
    assert "upgrade_chart" not in fake.journal


def test_upgrade_values_change_without_migration(service, fake):
    installed(fake, "0.15.0", revision=2, values={"replicas": 3})

    report = run(upgrade_chart_service(service, Provider.of(fake)))

    assert report.status is Status.SUCCESS
    upgrade = report.child("upgrade-chart")
    assert upgrade.flag(keys.UPGRADED_BY_THIS_STEP)
    assert not upgrade.flag(keys.MIGRATED)
    assert fake.journal == ["upgrade_chart", "wait_for_pod_ready"]


def test_upgrade_rolls_back_to_previous_revision(service, fake):
    installed(fake, "0.15.0", revision=2, values={"replicas": 3})
    fake.fail_on = {"wait_for_pod_ready"}

    report = run(upgrade_chart_service(service, Provider.of(fake)))

    assert report.status is Status.FAILED
    assert fake.journal == ["upgrade_chart", "wait_for_pod_ready", "rollback_chart:2"]
    assert report.child("upgrade-chart").rollback.status is Status.SUCCESS


def test_upgrade_across_boundary_migrates(service, fake):
    installed(fake, "0.14.0")

    report = run(upgrade_chart_service(service, Provider.of(fake)))

    assert report.status is Status.SUCCESS
    assert fake.journal == [
        "setup_storage:archive",
        "create_persistent_volumes:archive",
        "upgrade_chart",
        "wait_for_pod_ready",
    ]
    upgrade = report.child("upgrade-chart")
    assert upgrade.flag(keys.MIGRATED)
    assert upgrade.flag(keys.UPGRADED_BY_THIS_STEP)
    nested = upgrade.step_reports[0]
    assert nested.step_id == "block-node-migrations"
    assert [r.step_id for r in nested.step_reports] == ["migration-storage-archive-0.15.0"]
    assert fake.pvs == {"live", "archive"}


def test_failed_migration_is_undone_once(service, fake):
    installed(fake, "0.14.0")
    fake.fail_on = {"upgrade_chart"}

    report = run(upgrade_chart_service(service, Provider.of(fake)))

    assert report.status is Status.FAILED
    assert report.error.kind is ErrorKind.ILLEGAL_STATE
    assert fake.journal == [
        "setup_storage:archive",
        "create_persistent_volumes:archive",
        "upgrade_chart",
        "delete_persistent_volumes:archive",
    ]
    upgrade = report.child("upgrade-chart")
    assert upgrade.rollback.status is Status.SKIPPED
    assert report.child("wait-for-ready") is None
    assert fake.pvs == {"live"}


def test_migration_undone_when_later_step_fails(service, fake):
    installed(fake, "0.14.0")
    fake.fail_on = {"wait_for_pod_ready"}

    report = run(upgrade_chart_service(service, Provider.of(fake)))

    assert report.status is Status.FAILED
    assert fake.journal[-2:] == ["rollback_chart:1", "delete_persistent_volumes:archive"]
    rb = report.child("upgrade-chart").rollback
    assert rb.status is Status.SUCCESS
    assert rb.step_id == "upgrade-chart"
    assert fake.pvs == {"live"}


def test_explicit_empty_registry_never_migrates(service, fake):
    installed(fake, "0.14.0")

    report = run(upgrade_chart_service(service, Provider.of(fake), MigrationManager()))

    assert report.status is Status.SUCCESS
    assert fake.journal == ["upgrade_chart", "wait_for_pod_ready"]


def test_failed_migration_keeps_preexisting_volume(service, fake):
    installed(fake, "0.14.0")
    fake.pvs = {"live", "archive"}
    fake.fail_on = {"upgrade_chart"}

    report = run(upgrade_chart_service(service, Provider.of(fake)))

    assert report.status is Status.FAILED
    assert fake.journal == ["setup_storage:archive", "upgrade_chart"]
    assert fake.pvs == {"live", "archive"}


def test_upgrade_with_reuse_values_is_idempotent(service, fake):
    service = service.model_copy(update={"reuse_values": True})
    installed(fake, "0.14.0")

    first = run(upgrade_chart_service(service, Provider.of(fake)))
    assert first.child("upgrade-chart").flag(keys.UPGRADED_BY_THIS_STEP)
    fake.journal.clear()

    second = run(upgrade_chart_service(service, Provider.of(fake)))

    upgrade = second.child("upgrade-chart")
    assert upgrade.status is Status.SKIPPED
    assert upgrade.flag(keys.ALREADY_CONFIGURED)
    assert fake.journal == ["wait_for_pod_ready"]


def test_prefixed_installed_version_matches_target(service, fake):
    installed(fake, "v0.15.0")

    report = run(upgrade_chart_service(service, Provider.of(fake)))

    assert report.child("upgrade-chart").status is Status.SKIPPED
    assert "upgrade_chart" not in fake.journal


def test_migration_events_reach_run_observers(service, fake, tmp_path):
    installed(fake, "0.14.0")
    events = tmp_path / "events.jsonl"

    report = execute_workflow(
        upgrade_chart_service(service, Provider.of(fake)),
        observers=[JsonFileObserver(events)],
        run_id="run-7",
    )

    assert report.status is Status.SUCCESS
    started = [r["step_id"] for r in JsonFileObserver(events).events(run_id="run-7") if r["type"] == "StepStarted"]
    assert started == [
        "upgrade-block-node",
        "upgrade-chart",
        "block-node-migrations",
        "migration-storage-archive-0.15.0",
        "wait-for-ready",
    ]
