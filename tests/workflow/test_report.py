import pytest

from noderig.errors import ErrorKind, ProvisionError, internal_error
from noderig.workflow.report import Action, Report, Status, failure, skipped, success


def test_failed_requires_error():
    with pytest.raises(ValueError):
        Report("s", Action.EXECUTE, Status.FAILED)


def test_skipped_never_carries_error():
    with pytest.raises(ValueError):
        Report("s", Action.EXECUTE, Status.SKIPPED, error=internal_error("boom"))


def test_success_with_error_rejected():
    with pytest.raises(ValueError):
        success("s", error=internal_error("boom"))


def test_metadata_is_read_only():
    r = success("s", metadata={"AlreadyInstalled": "true"})
    assert r.flag("AlreadyInstalled")
    with pytest.raises(TypeError):
        r.metadata["x"] = "y"  # type: ignore[index]


def test_with_rollback_returns_copy():
    err = ProvisionError(ErrorKind.DOWNLOAD, "nope")
    r = failure("s", err)
    rb = skipped("s", Action.ROLLBACK)
    r2 = r.with_rollback(rb)

    assert r.rollback is None
    assert r2.rollback is rb
    assert r2.error is err


def test_dict_and_render_include_children():
    child = failure("b", internal_error("boom")).with_rollback(success("b", Action.ROLLBACK))
    parent = failure("wf", child.error, step_reports=[success("a"), child])

    d = parent.dict()
    assert d["status"] == "failed"
    assert d["error_kind"] == "internal"
    assert [c["step_id"] for c in d["step_reports"]] == ["a", "b"]
    assert d["step_reports"][1]["rollback"]["status"] == "success"

    text = parent.render()
    assert "wf: execute FAILED" in text
    assert "rollback SUCCESS" in text
    assert parent.child("a").status is Status.SUCCESS
    assert parent.child("zzz") is None
