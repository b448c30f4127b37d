import pytest

from noderig.errors import ErrorKind, ProvisionError
from noderig.workflow.context import ExecutionContext
from noderig.workflow.provider import Provider


def test_with_value_shares_cancel_token():
    ctx = ExecutionContext()
    child = ctx.with_value("k", 1)

    assert child.value("k") == 1
    assert ctx.value("k") is None
    child.cancel()
    assert ctx.cancelled


def test_expired_deadline_raises_cancelled():
    ctx = ExecutionContext().with_timeout(0)
    with pytest.raises(ProvisionError) as ei:
        ctx.raise_if_cancelled()
    assert ei.value.kind is ErrorKind.CANCELLED


def test_detached_ignores_cancellation():
    ctx = ExecutionContext().with_timeout(0)
    ctx.cancel()
    d = ctx.detached()
    assert not d.cancelled
    d.raise_if_cancelled()


def test_provider_builds_once():
    built = []

    def factory():
        built.append(object())
        return built[-1]

    p = Provider(factory)
    assert not p.built
    assert p.get() is p.get()
    assert len(built) == 1
    assert Provider.of("x").get() == "x"
