import pytest

from tests.fakes import make_plan


@pytest.mark.asyncio
async def test_selecting_b_disables_a(engine, plans, scheduler):
    plans.add(make_plan("a", n_days=3))
    plans.add(make_plan("b", n_days=3, focus=lambda n: f"B{n}"))

    a_schedule = await engine.coordinator.select_as_active("a")
    b_schedule = await engine.coordinator.select_as_active("b")

    assert await engine.selection.get() == "b"
    assert await engine.store.load("a") is None
    assert await engine.store.load("b") == b_schedule
    assert not set(a_schedule.trigger_ids) & set(scheduler.live)
    assert set(scheduler.live) == set(b_schedule.trigger_ids)


@pytest.mark.asyncio
async def test_selection_changes_even_when_enable_is_denied(engine, plans, scheduler):
    plans.add(make_plan("a"))
    plans.add(make_plan("b"))
    await engine.coordinator.select_as_active("a")
    scheduler.granted = False

    outcome = await engine.on_plan_selected("b")

    assert not outcome.ok
    assert outcome.code == "permission_denied"
    assert outcome.reason == "permission not granted"
    assert outcome.active_plan_id == "b"
    assert await engine.selection.get() == "b"
    assert await engine.store.load("a") is None
    assert await engine.store.load("b") is None
    assert scheduler.live == {}


@pytest.mark.asyncio
async def test_reselecting_same_plan_re_enables(engine, plans, scheduler):
    plans.add(make_plan("a"))
    await engine.coordinator.select_as_active("a")
    schedule = await engine.coordinator.select_as_active("a")

    assert await engine.selection.get() == "a"
    assert set(scheduler.live) == set(schedule.trigger_ids)


@pytest.mark.asyncio
async def test_deselect_only_clears_matching_plan(engine, plans):
    plans.add(make_plan("a"))
    plans.add(make_plan("b"))
    await engine.coordinator.select_as_active("a")
    await engine.reconciler.enable("b")

    assert await engine.coordinator.deselect_if_completed_or_deleted("b") is False
    assert await engine.selection.get() == "a"
    assert await engine.store.load("b") is None

    assert await engine.coordinator.deselect_if_completed_or_deleted("a") is True
    assert await engine.selection.get() is None
    assert await engine.store.load("a") is None


@pytest.mark.asyncio
async def test_plan_created_becomes_active(engine, plans):
    plans.add(make_plan("new", n_days=2))

    outcome = await engine.on_plan_created("new")

    assert outcome.ok
    assert outcome.active_plan_id == "new"
    assert outcome.schedule.day_number == 1


@pytest.mark.asyncio
async def test_plan_deleted_clears_everything(engine, plans, scheduler):
    plans.add(make_plan("a"))
    await engine.on_plan_selected("a")
    del plans.plans["a"]

    outcome = await engine.on_plan_deleted("a")

    assert outcome.ok
    assert outcome.active_plan_id is None
    assert await engine.store.load("a") is None
    assert scheduler.live == {}


@pytest.mark.asyncio
async def test_day_done_walkthrough(engine, plans, scheduler):
    plans.add(make_plan("p", n_days=2))
    await engine.on_plan_selected("p")

    plans.complete("p", 1)
    outcome = await engine.on_day_marked_done("p", 1)
    assert outcome.ok and outcome.schedule.day_number == 2

    plans.complete("p", 2)
    outcome = await engine.on_day_marked_done("p", 2)
    assert outcome.ok
    assert outcome.schedule is None
    assert outcome.active_plan_id is None
    assert scheduler.live == {}


@pytest.mark.asyncio
async def test_completion_clears_selection_without_reminders(engine, plans, scheduler):
    plans.add(make_plan("p", n_days=1))
    scheduler.granted = False
    await engine.on_plan_selected("p")
    assert await engine.selection.get() == "p"

    plans.complete("p", 1)
    outcome = await engine.on_day_marked_done("p", 1)

    assert outcome.ok
    assert await engine.selection.get() is None


@pytest.mark.asyncio
async def test_missing_plan_is_forgotten(engine, plans, scheduler):
    plans.add(make_plan("p", n_days=3))
    await engine.on_plan_selected("p")
    del plans.plans["p"]

    outcome = await engine.enable_reminders("p")

    assert not outcome.ok
    assert outcome.code == "stale_plan_state"
    assert outcome.active_plan_id is None
    assert scheduler.live == {}


@pytest.mark.asyncio
async def test_disable_reminders_is_idempotent(engine, scheduler):
    outcome = await engine.disable_reminders("nothing")
    assert outcome.ok
    assert scheduler.calls == []


@pytest.mark.asyncio
async def test_active_reports_selection_and_schedule(engine, plans):
    assert (await engine.active()).active_plan_id is None
    plans.add(make_plan("p"))
    await engine.on_plan_selected("p")

    outcome = await engine.active()

    assert outcome.active_plan_id == "p"
    assert outcome.schedule.day_number == 1


@pytest.mark.asyncio
async def test_partial_failure_outcome_carries_recorded_schedule(engine, plans, scheduler):
    plans.add(make_plan("p"))
    scheduler.fail_from = 4

    outcome = await engine.enable_reminders("p")

    assert not outcome.ok
    assert outcome.code == "scheduling_failed"
    assert len(outcome.schedule.task_trigger_ids) == 3
    assert outcome.schedule.grace_trigger_id is None


@pytest.mark.asyncio
async def test_completion_clears_selection_after_an_early_mark_done(engine, plans, scheduler):
    plans.add(make_plan("p", n_days=2))
    await engine.on_plan_selected("p")

    # day 1 reported before the plan service shows it done
    early = await engine.on_day_marked_done("p", 1)

    assert not early.ok
    assert early.code == "completion_not_confirmed"
    assert early.schedule.day_number == 1
    assert early.active_plan_id == "p"

    plans.complete("p", 1)
    plans.complete("p", 2)
    outcome = await engine.on_day_marked_done("p", 2)

    assert outcome.ok
    assert outcome.schedule is None
    assert outcome.active_plan_id is None
    assert await engine.store.load("p") is None
    assert scheduler.live == {}
