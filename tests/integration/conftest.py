"""Integration test fixtures: services and API client over a real database."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from labor_engine.api.app import create_app
from labor_engine.api.dependencies import get_db_session
from labor_engine.compliance.evaluator import ComplianceEvaluator
from labor_engine.models import AuditEvent


@pytest.fixture
def evaluator(test_settings) -> ComplianceEvaluator:
    return ComplianceEvaluator(test_settings)


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """API client; every request gets its own session on the test database."""
    app = create_app()

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def headers(restaurant_id) -> dict[str, str]:
    return {"X-Restaurant-ID": str(restaurant_id)}


@pytest.fixture
def audit_actions():
    """Audit actions recorded for an entity."""

    async def _actions(session: AsyncSession, entity_type: str, entity_id) -> set[str]:
        await session.flush()
        result = await session.execute(
            select(AuditEvent.action).where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
        )
        return set(result.scalars().all())

    return _actions
