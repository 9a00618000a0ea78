"""Unit tests for the request session dependency: commit first, then drop cached levels."""

from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from control_plane.api.v1 import dependencies
from control_plane.application.services import PermissionEvaluator
from control_plane.application.services.permission_evaluator import access_key

KEY = access_key("t1", "u1")


@pytest.fixture
def events() -> list[str]:
    return []


@pytest.fixture
def request_(events, monkeypatch) -> SimpleNamespace:
    """Request stand-in over a postgres-configured app with a recording cache."""
    cache = MagicMock()
    cache.is_available.return_value = True
    cache.delete = AsyncMock(side_effect=lambda key: events.append(f"invalidate {key}"))

    @asynccontextmanager
    async def recording_scope():
        yield MagicMock()
        events.append("commit")

    monkeypatch.setattr(dependencies, "transaction_scope", recording_scope)
    monkeypatch.setattr(
        dependencies,
        "get_settings",
        lambda: SimpleNamespace(database_backend="postgres"),
    )
    return SimpleNamespace(
        app=SimpleNamespace(state=SimpleNamespace(cache=cache)),
        state=SimpleNamespace(),
    )


async def _invalidate_during(request_) -> None:
    evaluator = PermissionEvaluator(
        MagicMock(),
        cache=request_.app.state.cache,
        deferred_invalidations=dependencies.get_pending_invalidations(request_),
    )
    await evaluator.invalidate("u1", "t1")


async def test_invalidation_runs_after_commit(request_, events) -> None:
    session_gen = dependencies.get_session(request_)
    await session_gen.__anext__()

    await _invalidate_during(request_)
    assert events == []

    with pytest.raises(StopAsyncIteration):
        await session_gen.__anext__()
    assert events == ["commit", f"invalidate {KEY}"]


async def test_failed_request_still_drops_levels(request_, events) -> None:
    session_gen = dependencies.get_session(request_)
    await session_gen.__anext__()
    await _invalidate_during(request_)

    with pytest.raises(RuntimeError):
        await session_gen.athrow(RuntimeError("boom"))
    assert events == [f"invalidate {KEY}"]
