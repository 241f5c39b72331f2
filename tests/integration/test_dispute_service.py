"""Dispute service tests."""

from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from labor_engine.services.dispute_service import DisputeNotFoundError, DisputeService
from labor_engine.services.state_machine import InvalidTransitionError
from labor_engine.services.tip_service import TipPoolService
from labor_engine.tips.disputes import DisputeError
from labor_engine.tips.distributor import TipPoolSettings, TipShareInput

PERIOD = "2024-03-04"


@pytest.fixture
def service(session):
    return DisputeService(session)


@pytest_asyncio.fixture
async def split(session, restaurant_id):
    group = [TipShareInput(employee_id=uuid4(), hours=Decimal(h)) for h in ("6", "4")]
    return await TipPoolService(session).distribute_period(
        restaurant_id, PERIOD, 1000, group, TipPoolSettings()
    )


class TestCreateDispute:
    async def test_open_dispute(self, service, split, restaurant_id, session, audit_actions):
        employee_id = split.items[1].employee_id

        dispute = await service.create_dispute(
            restaurant_id, employee_id, split.split_id, "missing_hours", "Closed on Saturday too"
        )

        assert dispute.status == "open"
        assert dispute.dispute_type == "missing_hours"
        assert dispute.message == "Closed on Saturday too"
        assert dispute.created_at is not None
        assert await audit_actions(session, "tip_dispute", dispute.dispute_id) == {"opened"}

    async def test_unknown_split(self, service, restaurant_id):
        with pytest.raises(DisputeError):
            await service.create_dispute(restaurant_id, uuid4(), uuid4(), "other")

    async def test_split_of_other_restaurant(self, service, split):
        with pytest.raises(DisputeError):
            await service.create_dispute(uuid4(), uuid4(), split.split_id, "other")

    async def test_unknown_type(self, service, split, restaurant_id):
        with pytest.raises(DisputeError):
            await service.create_dispute(restaurant_id, uuid4(), split.split_id, "rude_manager")

    async def test_dispute_on_locked_period(self, service, split, restaurant_id, session):
        await TipPoolService(session).lock_period(restaurant_id, PERIOD, uuid4())

        dispute = await service.create_dispute(
            restaurant_id, split.items[0].employee_id, split.split_id, "incorrect_amount"
        )

        assert dispute.status == "open"
        assert split.status == "locked"


class TestResolveDispute:
    async def test_resolve(self, service, split, restaurant_id, session, audit_actions):
        dispute = await service.create_dispute(
            restaurant_id, split.items[0].employee_id, split.split_id, "wrong_role"
        )
        manager = uuid4()

        resolved = await service.resolve_dispute(
            restaurant_id, dispute.dispute_id, manager, notes="Role corrected for next week"
        )

        assert resolved.status == "resolved"
        assert resolved.resolved_by == manager
        assert resolved.resolved_at is not None
        assert resolved.resolution_notes == "Role corrected for next week"
        assert [item.amount_cents for item in split.items] == [600, 400]
        assert await audit_actions(session, "tip_dispute", dispute.dispute_id) == {
            "opened",
            "resolved",
        }

    async def test_resolve_twice(self, service, split, restaurant_id):
        dispute = await service.create_dispute(
            restaurant_id, split.items[0].employee_id, split.split_id, "other"
        )
        await service.resolve_dispute(restaurant_id, dispute.dispute_id, uuid4())

        with pytest.raises(InvalidTransitionError):
            await service.resolve_dispute(restaurant_id, dispute.dispute_id, uuid4())

    async def test_resolver_required(self, service, split, restaurant_id):
        dispute = await service.create_dispute(
            restaurant_id, split.items[0].employee_id, split.split_id, "other"
        )

        with pytest.raises(DisputeError):
            await service.resolve_dispute(restaurant_id, dispute.dispute_id, None)

    async def test_unknown_dispute(self, service, restaurant_id):
        with pytest.raises(DisputeNotFoundError):
            await service.resolve_dispute(restaurant_id, uuid4(), uuid4())


class TestListDisputes:
    async def test_filters(self, service, split, restaurant_id):
        first = await service.create_dispute(
            restaurant_id, split.items[0].employee_id, split.split_id, "missing_tips"
        )
        second = await service.create_dispute(
            restaurant_id, split.items[1].employee_id, split.split_id, "wrong_date"
        )
        await service.resolve_dispute(restaurant_id, second.dispute_id, uuid4())

        open_ids = {d.dispute_id for d in await service.list_disputes(restaurant_id, status="open")}
        all_ids = {
            d.dispute_id for d in await service.list_disputes(restaurant_id, split_id=split.split_id)
        }

        assert open_ids == {first.dispute_id}
        assert all_ids == {first.dispute_id, second.dispute_id}
        assert await service.list_disputes(uuid4()) == []
