"""Tests for local/remote dispatch and uniform failures."""

from __future__ import annotations

from typing import Any, ClassVar

import pytest

from sauce_common.errors import ConfigurationError, ExecutionError
from sauce_remote.channels import LoopbackChannel
from sauce_remote.dispatcher import LocalDispatcher, RemoteDispatcher, execute, select_dispatcher
from sauce_remote.types import ExecutionTarget, ExecutorContext
from sauce_remote.work import FreePortWork, WorkUnit, register_work


pytestmark = pytest.mark.unit_remote


@register_work
class EchoWork(WorkUnit[str]):
    kind: ClassVar[str] = "test_echo"

    text: str

    def run(self, context: ExecutorContext) -> str:
        return f"{context.hostname}:{self.text}"


@register_work
class ExplodingWork(WorkUnit[str]):
    kind: ClassVar[str] = "test_explode"

    typed: bool = False

    def run(self, context: ExecutorContext) -> str:
        if self.typed:
            raise ConfigurationError("bad settings", context={"field": "port"})
        raise RuntimeError("kaboom")


class BrokenChannel:
    def call(self, work: WorkUnit[Any]) -> Any:
        raise ConnectionResetError("link lost")


def test_select_dispatcher_picks_implementation() -> None:
    assert isinstance(select_dispatcher(ExecutionTarget.LOCAL), LocalDispatcher)
    assert isinstance(
        select_dispatcher(ExecutionTarget.REMOTE, channel=LoopbackChannel()), RemoteDispatcher
    )


def test_remote_without_channel_runs_locally() -> None:
    assert isinstance(select_dispatcher(ExecutionTarget.REMOTE), LocalDispatcher)


def test_local_and_remote_return_same_result() -> None:
    context = ExecutorContext(hostname="agent-7")
    work = EchoWork(text="hello")
    local = execute(ExecutionTarget.LOCAL, work, context=context)
    remote = execute(ExecutionTarget.REMOTE, work, channel=LoopbackChannel(context))
    assert local == remote == "agent-7:hello"


@pytest.mark.parametrize("typed", [False, True])
def test_failures_surface_as_execution_error_everywhere(typed: bool) -> None:
    work = ExplodingWork(typed=typed)
    with pytest.raises(ExecutionError) as local_exc:
        LocalDispatcher().execute(work)
    with pytest.raises(ExecutionError) as remote_exc:
        RemoteDispatcher(LoopbackChannel()).execute(work)
    assert local_exc.value.context["kind"] == "test_explode"
    assert remote_exc.value.context["kind"] == "test_explode"
    if typed:
        assert local_exc.value.context["error_type"] == "ConfigurationError"
        assert remote_exc.value.context["error_type"] == "ConfigurationError"


def test_broken_channel_is_execution_error() -> None:
    with pytest.raises(ExecutionError) as excinfo:
        RemoteDispatcher(BrokenChannel()).execute(EchoWork(text="x"))
    assert excinfo.value.context["target"] == "remote"
    assert isinstance(excinfo.value.__cause__, ConnectionResetError)


def test_free_port_work_returns_usable_port() -> None:
    port = LocalDispatcher().execute(FreePortWork())
    assert 0 < port < 65536


def test_free_port_decode_rejects_garbage() -> None:
    with pytest.raises(ExecutionError):
        FreePortWork().decode_result("not-a-port")
