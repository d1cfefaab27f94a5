"""
Reaper Tests
============
Decision engine (reap_maybe) and single sweep passes (reap / reap_safely).
Collaborators are an in-memory store, with mocks where a call must be
observed or made to fail.
"""
import pytest
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from app.core.errors import CancelError, NotFoundError, StoreError
from app.models.build import Build, BuildStatus, Repository, Stage
from app.reaper.reaper import Decision, Reaper
from app.stores.memory import MemoryStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def ago(minutes):
    return NOW - timedelta(minutes=minutes)


def _pending(build_id, created_minutes_ago, repo_id=1):
    return Build(id=build_id, repo_id=repo_id, number=build_id,
                 status=BuildStatus.PENDING, created=ago(created_minutes_ago))


def _running(build_id, started_minutes_ago, repo_id=1):
    return Build(id=build_id, repo_id=repo_id, number=build_id, status=BuildStatus.RUNNING,
                 created=ago(started_minutes_ago + 1), started=ago(started_minutes_ago))


def _stage(stage_id, build_id, status, started_minutes_ago=None):
    started = None if started_minutes_ago is None else ago(started_minutes_ago)
    return Stage(id=stage_id, build_id=build_id, number=stage_id, status=status, started=started)


@pytest.fixture
def store():
    return MemoryStore(repos=[Repository(id=1, slug="octocat/hello", timeout=30)])


@pytest.fixture
def reaper(store):
    return Reaper(store, store, store, store,
                  running=timedelta(hours=1), pending=timedelta(hours=1),
                  buffer=timedelta(minutes=5))


def _run(coro):
    with patch("app.reaper.reaper.utcnow", return_value=NOW):
        return asyncio.run(coro)


# ===================================================================
# Construction
# ===================================================================
def test_zero_deadlines_default_to_24_hours(store):
    r = Reaper(store, store, store, store, running=timedelta(0), pending=None)
    assert r.running == timedelta(hours=24)
    assert r.pending == timedelta(hours=24)


def test_deadlines_are_read_only(reaper):
    with pytest.raises(AttributeError):
        reaper.pending = timedelta(minutes=1)


# ===================================================================
# reap_maybe
# ===================================================================
def test_pending_build_cancelled_without_fetching_stages(store):
    stages = MagicMock()
    stages.list = AsyncMock(return_value=[])
    canceler = MagicMock()
    canceler.cancel = AsyncMock()
    r = Reaper(store, store, stages, canceler, buffer=timedelta(minutes=5))
    build = _pending(1, 600)

    decision = _run(r.reap_maybe(build, NOW))

    assert decision == Decision.CANCEL
    stages.list.assert_not_called()
    canceler.cancel.assert_awaited_once()
    repo, cancelled = canceler.cancel.await_args.args
    assert repo.id == 1 and cancelled.id == 1


def test_running_build_without_stages_is_cancelled(reaper, store):
    store.add(_running(2, 120))
    decision = _run(reaper.reap_maybe(store.build(2), NOW))
    assert decision == Decision.CANCEL
    assert store.build(2).status == BuildStatus.KILLED


def test_running_build_with_only_finished_stages_is_cancelled(reaper, store):
    store.add(_running(2, 120),
              _stage(10, 2, BuildStatus.SUCCESS, 100),
              _stage(11, 2, BuildStatus.FAILURE, 90))
    assert _run(reaper.reap_maybe(store.build(2), NOW)) == Decision.CANCEL


@pytest.mark.parametrize("started, expected", [
    (10, Decision.NOOP),
    (34, Decision.NOOP),
    (35, Decision.NOOP),
    (36, Decision.CANCEL),
    (300, Decision.CANCEL),
])
def test_active_stage_compared_against_repository_timeout(reaper, store, started, expected):
    # repository timeout 30m, buffer 5m
    store.add(_running(2, 120),
              _stage(10, 2, BuildStatus.SUCCESS, 119),
              _stage(11, 2, BuildStatus.RUNNING, started))
    assert _run(reaper.reap_maybe(store.build(2), NOW)) == expected


def test_healthy_build_is_left_alone(reaper, store):
    store.add(_running(2, 120), _stage(10, 2, BuildStatus.RUNNING, 5))
    _run(reaper.reap_maybe(store.build(2), NOW))
    assert store.build(2).status == BuildStatus.RUNNING


def test_missing_repository_propagates(reaper, store):
    canceler = MagicMock()
    canceler.cancel = AsyncMock()
    r = Reaper(store, store, store, canceler)
    with pytest.raises(NotFoundError):
        _run(r.reap_maybe(_pending(1, 600, repo_id=99), NOW))
    canceler.cancel.assert_not_called()


def test_cancel_failure_propagates(store):
    canceler = MagicMock()
    canceler.cancel = AsyncMock(side_effect=CancelError("db locked"))
    r = Reaper(store, store, store, canceler)
    with pytest.raises(CancelError):
        _run(r.reap_maybe(_pending(1, 600), NOW))


# ===================================================================
# reap — candidate selection
# ===================================================================
def test_pending_deadline_scenario(reaper, store):
    """pending deadline 1h, buffer 5m: 70 minutes → cancel, 64 minutes → keep."""
    store.add(_pending(1, 70), _pending(2, 64))

    report = _run(reaper.reap())

    assert report.pending_seen == 2
    assert report.candidates == 1
    assert report.cancelled == [1]
    assert store.build(1).status == BuildStatus.KILLED
    assert store.build(2).status == BuildStatus.PENDING


def test_running_candidate_with_fresh_stage_is_skipped(reaper, store):
    store.add(_running(3, 120), _stage(30, 3, BuildStatus.RUNNING, 34),
              _running(4, 120), _stage(40, 4, BuildStatus.RUNNING, 36),
              _running(5, 20))

    report = _run(reaper.reap())

    assert report.running_seen == 3
    assert report.candidates == 2
    assert report.cancelled == [4]
    assert report.skipped == [3]
    assert store.build(5).status == BuildStatus.RUNNING


def test_running_build_without_start_falls_back_to_created(reaper, store):
    store.add(Build(id=6, repo_id=1, status=BuildStatus.RUNNING, created=ago(600)))
    report = _run(reaper.reap())
    assert report.cancelled == [6]


def test_uses_single_now_per_pass(reaper, store):
    store.add(_pending(1, 70))
    with patch("app.reaper.reaper.utcnow", return_value=NOW) as mock_now:
        asyncio.run(reaper.reap())
    # once at the start, once to stamp finished_at
    assert mock_now.call_count == 2


# ===================================================================
# reap — failures
# ===================================================================
def _five_pending_with_failing_third(store):
    store.add(*[_pending(i, 600) for i in range(1, 6)])
    canceler = MagicMock()
    canceler.cancel = AsyncMock(side_effect=[None, None, CancelError("boom")])
    return canceler


def test_fail_fast_stops_remaining_candidates(store):
    canceler = _five_pending_with_failing_third(store)
    builds = MagicMock()
    builds.pending = AsyncMock(side_effect=store.pending)
    builds.running = AsyncMock(return_value=[])
    r = Reaper(store, builds, store, canceler, pending=timedelta(hours=1))

    with pytest.raises(CancelError):
        _run(r.reap())

    assert canceler.cancel.await_count == 3
    builds.running.assert_not_called()
    assert r.last_report.cancelled == [1, 2]


def test_next_pass_re_evaluates_all_candidates(store):
    canceler = _five_pending_with_failing_third(store)
    r = Reaper(store, store, store, canceler, pending=timedelta(hours=1))

    first = _run(r.reap_safely())
    assert first.outcome == "error"
    assert "boom" in first.error

    canceler.cancel = AsyncMock()
    second = _run(r.reap_safely())

    assert second.outcome == "ok"
    assert canceler.cancel.await_count == 5
    assert second.cancelled == [1, 2, 3, 4, 5]


def test_running_list_failure_is_reported(store):
    builds = MagicMock()
    builds.pending = AsyncMock(return_value=[])
    builds.running = AsyncMock(side_effect=StoreError("connection reset"))
    r = Reaper(store, builds, store, store)

    report = _run(r.reap_safely())

    assert report.outcome == "error"
    assert report.error == "connection reset"
    assert report.finished_at == NOW


def test_unexpected_fault_is_contained_and_logged(store, caplog):
    builds = MagicMock()
    builds.pending = AsyncMock(side_effect=RuntimeError("invariant broken"))
    r = Reaper(store, builds, store, store)

    with caplog.at_level(logging.ERROR, logger="app.reaper.reaper"):
        report = _run(r.reap_safely())

    assert report.outcome == "fault"
    assert "invariant broken" in report.error
    assert any("unexpected fault" in rec.getMessage() and rec.exc_info for rec in caplog.records)


def test_store_error_is_logged(store, caplog):
    builds = MagicMock()
    builds.pending = AsyncMock(side_effect=StoreError("timeout"))
    r = Reaper(store, builds, store, store)

    with caplog.at_level(logging.ERROR, logger="app.reaper.reaper"):
        _run(r.reap_safely())

    assert any("cannot get pending builds" in rec.getMessage() for rec in caplog.records)
