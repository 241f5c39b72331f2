"""Pytest fixtures for labor engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from dataclasses import replace
from datetime import date, datetime, timedelta
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from labor_engine.calculators.types import Employee, PunchType, Shift, TimePunch
from labor_engine.config import Settings, get_settings
from labor_engine.models import Base

# Monday
WEEK_START = date(2024, 3, 4)


@pytest.fixture
def test_settings() -> Settings:
    """Settings with fixed calendar and shift boundaries."""
    return replace(
        get_settings(),
        max_workers=2,
        week_start_day=0,
        closing_shift_end="22:00",
        opening_shift_start="11:00",
    )


@pytest.fixture
def restaurant_id() -> UUID:
    return uuid4()


@pytest.fixture
def make_employee() -> Callable[..., Employee]:
    """Factory for roster employees."""

    def _make(name: str = "Alex", **kwargs) -> Employee:
        kwargs.setdefault("employee_id", uuid4())
        kwargs.setdefault("hourly_rate_cents", 1500)
        return Employee(name=name, **kwargs)

    return _make


@pytest.fixture
def make_shift() -> Callable[..., Shift]:
    """Factory for shifts from a start datetime and a length in hours."""

    def _make(
        employee: Employee,
        start: datetime,
        hours: float | None = None,
        end: datetime | None = None,
        **kwargs,
    ) -> Shift:
        if end is None:
            end = start + timedelta(hours=hours or 8)
        return Shift(
            shift_id=kwargs.pop("shift_id", uuid4()),
            employee_id=employee.employee_id,
            start_time=start,
            end_time=end,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_punches() -> Callable[..., list[TimePunch]]:
    """Factory for a clock-in/clock-out pair, optionally with one break."""

    def _make(
        employee: Employee,
        clock_in: datetime,
        clock_out: datetime,
        break_start: datetime | None = None,
        break_end: datetime | None = None,
    ) -> list[TimePunch]:
        punches = [
            TimePunch(employee.employee_id, clock_in, PunchType.CLOCK_IN),
            TimePunch(employee.employee_id, clock_out, PunchType.CLOCK_OUT),
        ]
        if break_start is not None:
            punches.append(TimePunch(employee.employee_id, break_start, PunchType.BREAK_START))
        if break_end is not None:
            punches.append(TimePunch(employee.employee_id, break_end, PunchType.BREAK_END))
        return punches

    return _make


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Create test database engine.

    File-backed SQLite so that two sessions use two connections, as they
    would against PostgreSQL.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'labor_test.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()
