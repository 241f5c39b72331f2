"""Tip pool service tests: stored splits, rebalancing and period locks."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select, update

from labor_engine.models import TipPeriodLockRecord, TipSplitItem
from labor_engine.services.locking_service import LockingService
from labor_engine.services.tip_service import TipPoolService, TipSplitNotFoundError
from labor_engine.tips.distributor import (
    LockConflictError,
    LockValidationError,
    PeriodLockedError,
    ShareMethod,
    TipPoolSettings,
    TipShareInput,
)

PERIOD = "2024-03-04"


def participants(*hours):
    return [TipShareInput(employee_id=uuid4(), hours=Decimal(str(h))) for h in hours]


def amounts(split):
    return [item.amount_cents for item in split.items]


@pytest.fixture
def service(session):
    return TipPoolService(session)


class TestDistribute:
    """Computing and storing a period's split."""

    async def test_distribute_by_hours(self, service, restaurant_id, session, audit_actions):
        split = await service.distribute_period(
            restaurant_id, PERIOD, 1000, participants(6, 3, 1), TipPoolSettings()
        )

        assert split.status == "draft"
        assert split.total_cents == 1000
        assert split.share_method == "hours"
        assert amounts(split) == [600, 300, 100]
        assert [item.hours for item in split.items] == [Decimal("6"), Decimal("3"), Decimal("1")]
        assert await audit_actions(session, "tip_split", split.split_id) == {"distributed"}

    async def test_new_period_split_is_stored(self, restaurant_id, session_factory):
        async with session_factory() as writer:
            split = await TipPoolService(writer).distribute_period(
                restaurant_id, PERIOD, 1000, participants(6, 3, 1), TipPoolSettings()
            )
            await writer.commit()

        async with session_factory() as check:
            stored = await TipPoolService(check).get_split(restaurant_id, PERIOD)
        assert stored.split_id == split.split_id
        assert stored.version == 1
        assert amounts(stored) == [600, 300, 100]
        assert [item.position for item in stored.items] == [0, 1, 2]

    async def test_remainder_cents_reconciled(self, service, restaurant_id):
        split = await service.distribute_period(
            restaurant_id, PERIOD, 1001, participants(5, 5, 5), TipPoolSettings()
        )

        assert amounts(split) == [334, 334, 333]

    async def test_redistribute_replaces_draft(self, service, restaurant_id, session):
        first = await service.distribute_period(
            restaurant_id, PERIOD, 1000, participants(6, 3, 1), TipPoolSettings()
        )
        split_id = first.split_id

        second = await service.distribute_period(
            restaurant_id,
            PERIOD,
            500,
            participants(1, 1),
            TipPoolSettings(share_method=ShareMethod.MANUAL),
        )

        assert second.split_id == split_id
        assert second.total_cents == 500
        assert second.share_method == "manual"
        assert amounts(second) == [250, 250]
        item_count = await session.scalar(
            select(func.count()).select_from(TipSplitItem).where(TipSplitItem.split_id == split_id)
        )
        assert item_count == 2

    async def test_periods_are_independent(self, service, restaurant_id):
        await service.distribute_period(
            restaurant_id, PERIOD, 1000, participants(6, 3, 1), TipPoolSettings()
        )
        await service.distribute_period(
            restaurant_id, "2024-03-05", 200, participants(1), TipPoolSettings()
        )

        assert (await service.get_split(restaurant_id, PERIOD)).total_cents == 1000
        assert await service.get_split(uuid4(), PERIOD) is None


class TestRebalance:
    """Manual edits of a stored draft split."""

    async def test_rebalance_keeps_proportions(self, service, restaurant_id, session, audit_actions):
        group = participants(5, 3, 2)
        split = await service.distribute_period(
            restaurant_id, PERIOD, 1000, group, TipPoolSettings()
        )

        split = await service.rebalance_period(restaurant_id, PERIOD, group[0].employee_id, 600)

        assert amounts(split) == [600, 240, 160]
        assert [item.manually_edited for item in split.items] == [True, False, False]
        assert await audit_actions(session, "tip_split", split.split_id) == {
            "distributed",
            "rebalanced",
        }

    async def test_rebalance_missing_split(self, service, restaurant_id):
        with pytest.raises(TipSplitNotFoundError):
            await service.rebalance_period(restaurant_id, PERIOD, uuid4(), 10)


class TestLockPeriod:
    """Locking freezes a period's split."""

    async def test_lock_stores_snapshot(self, service, restaurant_id, session, audit_actions):
        group = participants(6, 3, 1)
        split = await service.distribute_period(restaurant_id, PERIOD, 1000, group, TipPoolSettings())
        manager = uuid4()

        lock = await service.lock_period(restaurant_id, PERIOD, manager)

        assert lock.split_id == split.split_id
        assert lock.locked_by == manager
        assert lock.snapshot == {
            str(group[0].employee_id): 600,
            str(group[1].employee_id): 300,
            str(group[2].employee_id): 100,
        }
        assert len(lock.snapshot_hash) == 64
        assert split.status == "locked"
        assert LockingService(session).verify_lock_intact(lock, split) == []
        assert "locked" in await audit_actions(session, "tip_split", split.split_id)

    async def test_locked_period_cannot_be_redistributed(self, service, restaurant_id, session_factory):
        async with session_factory() as setup:
            setup_service = TipPoolService(setup)
            await setup_service.distribute_period(
                restaurant_id, PERIOD, 1000, participants(6, 3, 1), TipPoolSettings()
            )
            await setup_service.lock_period(restaurant_id, PERIOD, uuid4())
            await setup.commit()

        with pytest.raises(PeriodLockedError):
            await service.distribute_period(
                restaurant_id, PERIOD, 9999, participants(1, 1), TipPoolSettings()
            )

        async with session_factory() as check:
            split = await TipPoolService(check).get_split(restaurant_id, PERIOD)
        assert split.total_cents == 1000
        assert amounts(split) == [600, 300, 100]
        assert split.status == "locked"

    async def test_locked_period_cannot_be_rebalanced(self, service, restaurant_id):
        group = participants(6, 3, 1)
        await service.distribute_period(restaurant_id, PERIOD, 1000, group, TipPoolSettings())
        await service.lock_period(restaurant_id, PERIOD, uuid4())

        with pytest.raises(PeriodLockedError):
            await service.rebalance_period(restaurant_id, PERIOD, group[0].employee_id, 10)

    async def test_second_lock_conflicts(self, service, restaurant_id):
        await service.distribute_period(
            restaurant_id, PERIOD, 1000, participants(6, 3, 1), TipPoolSettings()
        )
        await service.lock_period(restaurant_id, PERIOD, uuid4())

        with pytest.raises(LockConflictError):
            await service.lock_period(restaurant_id, PERIOD, uuid4())

    async def test_lock_requires_actor(self, service, restaurant_id):
        await service.distribute_period(
            restaurant_id, PERIOD, 1000, participants(6, 3, 1), TipPoolSettings()
        )

        with pytest.raises(LockValidationError):
            await service.lock_period(restaurant_id, PERIOD, None)

        assert await service.get_lock(restaurant_id, PERIOD) is None

    async def test_lock_requires_split(self, service, restaurant_id):
        with pytest.raises(LockValidationError):
            await service.lock_period(restaurant_id, PERIOD, uuid4())

    async def test_lock_requires_allocated_tips(self, service, restaurant_id):
        await service.distribute_period(
            restaurant_id, PERIOD, 0, participants(6, 3), TipPoolSettings()
        )

        with pytest.raises(LockValidationError):
            await service.lock_period(restaurant_id, PERIOD, uuid4())

    async def test_tampered_amounts_detected(self, restaurant_id, session_factory):
        async with session_factory() as setup:
            setup_service = TipPoolService(setup)
            split = await setup_service.distribute_period(
                restaurant_id, PERIOD, 1000, participants(6, 3, 1), TipPoolSettings()
            )
            await setup_service.lock_period(restaurant_id, PERIOD, uuid4())
            await setup.commit()
        async with session_factory() as writer:
            await writer.execute(
                update(TipSplitItem)
                .where(TipSplitItem.split_id == split.split_id, TipSplitItem.position == 0)
                .values(amount_cents=1)
            )
            await writer.commit()

        async with session_factory() as check:
            check_service = TipPoolService(check)
            stored = await check_service.get_split(restaurant_id, PERIOD)
            lock = await check_service.get_lock(restaurant_id, PERIOD)
            errors = LockingService(check).verify_lock_intact(lock, stored)

        assert errors == ["Split amounts differ from the locked snapshot"]


class TestConcurrentLock:
    """Two managers lock the same period at once."""

    async def test_exactly_one_lock_wins(self, restaurant_id, session_factory):
        async with session_factory() as setup:
            await TipPoolService(setup).distribute_period(
                restaurant_id, PERIOD, 1000, participants(6, 3, 1), TipPoolSettings()
            )
            await setup.commit()
        first_manager, second_manager = uuid4(), uuid4()

        async with session_factory() as session_a, session_factory() as session_b:
            service_a = TipPoolService(session_a)
            service_b = TipPoolService(session_b)
            # Both managers see the draft split
            stale = await service_b.get_split(restaurant_id, PERIOD)
            assert stale.status == "draft"

            await service_a.lock_period(restaurant_id, PERIOD, first_manager)
            await session_a.commit()

            with pytest.raises(LockConflictError):
                await service_b.lock_period(restaurant_id, PERIOD, second_manager)

        async with session_factory() as check:
            locks = (
                await check.execute(
                    select(TipPeriodLockRecord).where(
                        TipPeriodLockRecord.restaurant_id == restaurant_id
                    )
                )
            ).scalars().all()
            split = await TipPoolService(check).get_split(restaurant_id, PERIOD)

        assert len(locks) == 1
        assert locks[0].locked_by == first_manager
        assert split.status == "locked"

    async def test_distribute_loses_to_lock_after_unlocked_check(
        self, restaurant_id, session_factory, monkeypatch
    ):
        """A lock committed between the unlocked check and the write wins."""
        async with session_factory() as setup:
            await TipPoolService(setup).distribute_period(
                restaurant_id, PERIOD, 1000, participants(5, 5), TipPoolSettings()
            )
            await setup.commit()

        async with session_factory() as session_a:
            service_a = TipPoolService(session_a)
            check_unlocked = service_a._ensure_unlocked

            async def lock_after_check(*args):
                await check_unlocked(*args)
                async with session_factory() as session_b:
                    await TipPoolService(session_b).lock_period(restaurant_id, PERIOD, uuid4())
                    await session_b.commit()

            monkeypatch.setattr(service_a, "_ensure_unlocked", lock_after_check)

            with pytest.raises(PeriodLockedError):
                await service_a.distribute_period(
                    restaurant_id, PERIOD, 9999, participants(1), TipPoolSettings()
                )

        async with session_factory() as check:
            check_service = TipPoolService(check)
            split = await check_service.get_split(restaurant_id, PERIOD)
            lock = await check_service.get_lock(restaurant_id, PERIOD)
            assert split.status == "locked"
            assert split.total_cents == 1000
            assert amounts(split) == [500, 500]
            assert LockingService(check).verify_lock_intact(lock, split) == []

    async def test_rebalance_loses_to_lock_after_unlocked_check(
        self, restaurant_id, session_factory, monkeypatch
    ):
        group = participants(5, 5)
        async with session_factory() as setup:
            await TipPoolService(setup).distribute_period(
                restaurant_id, PERIOD, 1000, group, TipPoolSettings()
            )
            await setup.commit()

        async with session_factory() as session_a:
            service_a = TipPoolService(session_a)
            check_unlocked = service_a._ensure_unlocked

            async def lock_after_check(*args):
                await check_unlocked(*args)
                async with session_factory() as session_b:
                    await TipPoolService(session_b).lock_period(restaurant_id, PERIOD, uuid4())
                    await session_b.commit()

            monkeypatch.setattr(service_a, "_ensure_unlocked", lock_after_check)

            with pytest.raises(PeriodLockedError):
                await service_a.rebalance_period(restaurant_id, PERIOD, group[0].employee_id, 900)

        async with session_factory() as check:
            split = await TipPoolService(check).get_split(restaurant_id, PERIOD)
        assert amounts(split) == [500, 500]
        assert [item.manually_edited for item in split.items] == [False, False]

    async def test_lock_loses_to_recompute_after_snapshot(self, restaurant_id, session_factory):
        """A lock holding amounts read before a recompute does not freeze them."""
        async with session_factory() as setup:
            await TipPoolService(setup).distribute_period(
                restaurant_id, PERIOD, 1000, participants(6, 3, 1), TipPoolSettings()
            )
            await setup.commit()

        async with session_factory() as session_a, session_factory() as session_b:
            service_b = TipPoolService(session_b)
            stale = await service_b.get_split(restaurant_id, PERIOD)
            assert amounts(stale) == [600, 300, 100]

            await TipPoolService(session_a).distribute_period(
                restaurant_id, PERIOD, 800, participants(1, 1), TipPoolSettings()
            )
            await session_a.commit()

            with pytest.raises(LockConflictError):
                await service_b.lock_period(restaurant_id, PERIOD, uuid4())

        async with session_factory() as check:
            check_service = TipPoolService(check)
            split = await check_service.get_split(restaurant_id, PERIOD)
            assert await check_service.get_lock(restaurant_id, PERIOD) is None
        assert split.status == "draft"
        assert amounts(split) == [400, 400]
        assert split.version == 2
