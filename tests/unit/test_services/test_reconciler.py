"""Tests for the coverage reconciler."""

import asyncio
import pytest

from leadroute.models.lead import LeadStatus
from leadroute.services.reconciler import (
    COVERAGE_RESTORED_MESSAGE,
    NO_COVERAGE_MESSAGE,
    CoverageReconciler,
)
from leadroute.utils.errors import TransientStoreError
from tests.utils.factories import create_assignment, create_lead


async def add_lead(store, status=LeadStatus.ACCEPTED, zip_code="10001"):
    return await store.insert_lead(create_lead(status=status, zip_code=zip_code))


async def messages(notifications):
    return [n.message for n in await notifications.list_recent(limit=100)]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_uncovered_accepted_lead_is_demoted(store, reconciler, notifications):
    lead = await add_lead(store, zip_code="99999")

    report = await reconciler.run_tick()

    assert report.demoted == [lead.lead_id]
    assert report.notifications == 1
    assert (await store.get_lead(lead.id)).status is LeadStatus.NO_COVERAGE
    assert await messages(notifications) == [NO_COVERAGE_MESSAGE.format(lead_id=lead.lead_id)]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_no_coverage_message_text(store, reconciler, notifications):
    lead = await add_lead(store, zip_code="99999")

    await reconciler.run_tick()

    assert await messages(notifications) == [
        f"Lead {lead.lead_id} has been updated to No-coverage because of no realtor in that area"
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_covered_lead_stays_accepted(store, reconciler, active_realtor_factory):
    await active_realtor_factory(zip_codes="10001")
    lead = await add_lead(store, zip_code="10001")

    report = await reconciler.run_tick()

    assert report.demoted == []
    assert (await store.get_lead(lead.id)).status is LeadStatus.ACCEPTED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_inactive_realtor_gives_no_coverage(store, reconciler, registry):
    from tests.utils.factories import create_realtor_data

    realtor = await registry.register_realtor(create_realtor_data())
    await registry.update_realtor(realtor.realtor_id, "zip_codes", "10001")
    lead = await add_lead(store, zip_code="10001")

    report = await reconciler.run_tick()

    assert report.demoted == [lead.lead_id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assigned_lead_is_not_demoted(store, reconciler):
    lead = await add_lead(store, zip_code="99999")
    await store.insert_assignment(create_assignment(lead.id, "user-1"))

    report = await reconciler.run_tick()

    assert report.demoted == []
    assert (await store.get_lead(lead.id)).status is LeadStatus.ACCEPTED


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("status", [LeadStatus.PENDING, LeadStatus.REJECTED, LeadStatus.REJECTED_OVERTURNED])
async def test_only_accepted_leads_are_demoted(store, reconciler, status):
    lead = await add_lead(store, status=status, zip_code="99999")

    await reconciler.run_tick()

    assert (await store.get_lead(lead.id)).status is status


@pytest.mark.unit
@pytest.mark.asyncio
async def test_new_coverage_promotes_lead(store, reconciler, notifications, active_realtor_factory):
    lead = await add_lead(store, status=LeadStatus.NO_COVERAGE, zip_code="10001")
    realtor = await active_realtor_factory(zip_codes="10001")

    report = await reconciler.run_tick()

    assert report.promoted == [lead.lead_id]
    assert (await store.get_lead(lead.id)).status is LeadStatus.ACCEPTED
    assert await messages(notifications) == [
        COVERAGE_RESTORED_MESSAGE.format(agent_code=realtor.agent_code, lead_id=lead.lead_id)
    ]
    assert await messages(notifications) == [
        f"{realtor.agent_code} covers this area and Lead {lead.lead_id} is set to accepted"
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_central_zip_with_radius_promotes(store, reconciler, registry):
    from tests.utils.factories import create_realtor_data

    realtor = await registry.register_realtor(create_realtor_data(central_zip_code="60601", radius=15))
    await registry.update_realtor(realtor.realtor_id, "is_active", True)
    lead = await add_lead(store, status=LeadStatus.NO_COVERAGE, zip_code="60601")
    neighbour = await add_lead(store, status=LeadStatus.NO_COVERAGE, zip_code="60602")

    report = await reconciler.run_tick()

    assert report.promoted == [lead.lead_id]
    assert (await store.get_lead(neighbour.id)).status is LeadStatus.NO_COVERAGE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_lead_covered_by_several_realtors_promoted_once(
    store, reconciler, notifications, active_realtor_factory
):
    lead = await add_lead(store, status=LeadStatus.NO_COVERAGE, zip_code="10001")
    await active_realtor_factory(zip_codes="10001")
    await active_realtor_factory(zip_codes="10001, 10002")

    report = await reconciler.run_tick()

    assert report.promoted == [lead.lead_id]
    assert report.notifications == 1
    assert len(await messages(notifications)) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_second_tick_is_idempotent(store, reconciler, notifications, active_realtor_factory):
    await add_lead(store, zip_code="99999")
    await add_lead(store, status=LeadStatus.NO_COVERAGE, zip_code="10001")
    await active_realtor_factory(zip_codes="10001")

    first = await reconciler.run_tick()
    second = await reconciler.run_tick()

    assert len(first.demoted) == 1
    assert len(first.promoted) == 1
    assert second.demoted == []
    assert second.promoted == []
    assert second.notifications == 0
    assert len(await messages(notifications)) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_demoted_lead_waits_for_next_tick(store, lead_status, notifications, active_realtor_factory):
    """A lead demoted in Sweep A is not promoted by Sweep B of the same tick."""
    realtor = await active_realtor_factory(zip_codes="10001")
    lead = await add_lead(store, zip_code="10001")

    class ForgetfulMatcher:
        """Sweep A sees no coverage, Sweep B sees the realtor's zip list."""

        def covers(self, realtor, zip_code):
            return False

        def covered_zip_codes(self, realtor):
            return set(realtor.zip_codes)

    reconciler = CoverageReconciler(store, lead_status, notifications, matcher=ForgetfulMatcher())

    first = await reconciler.run_tick()
    assert first.demoted == [lead.lead_id]
    assert first.promoted == []
    assert (await store.get_lead(lead.id)).status is LeadStatus.NO_COVERAGE

    second = await reconciler.run_tick()
    assert second.promoted == [lead.lead_id]
    assert realtor.agent_code in (await messages(notifications))[0]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concurrent_tick_is_skipped(store, reconciler, monkeypatch):
    await add_lead(store, zip_code="99999")
    started = asyncio.Event()
    release = asyncio.Event()
    original = store.list_leads_by_status

    async def slow_list(*args, **kwargs):
        started.set()
        await release.wait()
        return await original(*args, **kwargs)

    monkeypatch.setattr(store, "list_leads_by_status", slow_list)

    first = asyncio.create_task(reconciler.run_tick())
    await started.wait()
    assert reconciler.is_running

    skipped = await reconciler.run_tick()
    release.set()
    completed = await first

    assert skipped.skipped is True
    assert skipped.demoted == []
    assert completed.skipped is False
    assert len(completed.demoted) == 1
    assert not reconciler.is_running


@pytest.mark.unit
@pytest.mark.asyncio
async def test_tick_timeout_is_reported(store, lead_status, notifications, monkeypatch):
    await add_lead(store, zip_code="99999")

    async def hang(*args, **kwargs):
        await asyncio.sleep(10)

    monkeypatch.setattr(store, "list_leads_by_status", hang)
    reconciler = CoverageReconciler(store, lead_status, notifications, tick_timeout_seconds=0.05)

    report = await reconciler.run_tick()

    assert report.timed_out is True
    assert not reconciler.is_running


@pytest.mark.unit
@pytest.mark.asyncio
async def test_item_failure_does_not_stop_sweep(store, reconciler, monkeypatch):
    broken = await add_lead(store, zip_code="99998")
    healthy = await add_lead(store, zip_code="99999")
    original = store.compare_and_set_lead_status

    async def flaky_transition(lead_pk, *args, **kwargs):
        if lead_pk == broken.id:
            raise TransientStoreError("connection reset")
        return await original(lead_pk, *args, **kwargs)

    monkeypatch.setattr(store, "compare_and_set_lead_status", flaky_transition)

    report = await reconciler.run_tick()

    assert report.failures == 1
    assert report.demoted == [healthy.lead_id]
    assert (await store.get_lead(broken.id)).status is LeadStatus.ACCEPTED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sweep_input_failure_ends_only_that_sweep(store, reconciler, active_realtor_factory, monkeypatch):
    lead = await add_lead(store, status=LeadStatus.NO_COVERAGE, zip_code="10001")
    await active_realtor_factory(zip_codes="10001")
    original = store.list_leads_by_status

    async def accepted_unavailable(status, zip_codes=None):
        if status is LeadStatus.ACCEPTED:
            raise TransientStoreError("timeout")
        return await original(status, zip_codes=zip_codes)

    monkeypatch.setattr(store, "list_leads_by_status", accepted_unavailable)

    report = await reconciler.run_tick()

    assert report.failures == 1
    assert report.promoted == [lead.lead_id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sweeps_callable_directly(store, reconciler, active_realtor_factory):
    uncovered = await add_lead(store, zip_code="99999")
    waiting = await add_lead(store, status=LeadStatus.NO_COVERAGE, zip_code="10001")
    await active_realtor_factory(zip_codes="10001")

    demote_report = await reconciler.sweep_lead_coverage()
    promote_report = await reconciler.sweep_realtor_coverage()

    assert demote_report.demoted == [uncovered.lead_id]
    assert promote_report.promoted == [waiting.lead_id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_notification_leaves_demotion_for_next_tick(store, reconciler, notifications, monkeypatch):
    lead = await add_lead(store, zip_code="99999")
    original = store.insert_notification
    calls = {"count": 0}

    async def flaky_insert(notification):
        calls["count"] += 1
        if calls["count"] == 1:
            raise TransientStoreError("connection reset")
        return await original(notification)

    monkeypatch.setattr(store, "insert_notification", flaky_insert)

    first = await reconciler.run_tick()
    assert first.failures == 1
    assert first.demoted == []
    assert (await store.get_lead(lead.id)).status is LeadStatus.ACCEPTED
    assert await messages(notifications) == []

    second = await reconciler.run_tick()
    assert second.demoted == [lead.lead_id]
    assert (await store.get_lead(lead.id)).status is LeadStatus.NO_COVERAGE
    assert await messages(notifications) == [NO_COVERAGE_MESSAGE.format(lead_id=lead.lead_id)]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_notification_leaves_promotion_for_next_tick(
    store, reconciler, notifications, active_realtor_factory, monkeypatch
):
    lead = await add_lead(store, status=LeadStatus.NO_COVERAGE, zip_code="10001")
    realtor = await active_realtor_factory(zip_codes="10001")
    original = store.insert_notification
    calls = {"count": 0}

    async def flaky_insert(notification):
        calls["count"] += 1
        if calls["count"] == 1:
            raise TransientStoreError("connection reset")
        return await original(notification)

    monkeypatch.setattr(store, "insert_notification", flaky_insert)

    first = await reconciler.run_tick()
    assert first.failures == 1
    assert (await store.get_lead(lead.id)).status is LeadStatus.NO_COVERAGE

    second = await reconciler.run_tick()
    assert second.promoted == [lead.lead_id]
    assert await messages(notifications) == [
        COVERAGE_RESTORED_MESSAGE.format(agent_code=realtor.agent_code, lead_id=lead.lead_id)
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assignment_made_during_sweep_prevents_demotion(store, reconciler, notifications, monkeypatch):
    lead = await add_lead(store, zip_code="99999")
    original = store.list_realtors

    async def assign_while_loading(*args, **kwargs):
        # The lead is assigned after Sweep A has read the accepted leads
        await store.insert_assignment(create_assignment(lead.id, "user-1"))
        return await original(*args, **kwargs)

    monkeypatch.setattr(store, "list_realtors", assign_while_loading)

    report = await reconciler.sweep_lead_coverage()

    assert report.demoted == []
    assert report.failures == 0
    assert (await store.get_lead(lead.id)).status is LeadStatus.ACCEPTED
    assert await messages(notifications) == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_qa_zip_edit_is_matched_by_realtor_sweep(store, reconciler, lead_status, active_realtor_factory):
    lead = await add_lead(store, status=LeadStatus.NO_COVERAGE, zip_code="99999")
    await lead_status.update_lead(lead.lead_id, {"zip_code": " 10001 "})
    await active_realtor_factory(zip_codes="10001")

    report = await reconciler.run_tick()

    assert report.promoted == [lead.lead_id]
    assert (await store.get_lead(lead.id)).status is LeadStatus.ACCEPTED
