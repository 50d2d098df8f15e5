"""Integration test fixtures for TransRelay.

Provides an async HTTP client bound to an app whose orchestration context
uses mock translation providers.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from src.api.app import create_app
from src.core.config import Settings
from src.core.models import ServiceType
from src.services.context import OrchestrationContext


@pytest.fixture
async def context(mock_provider, no_sleep):
    ctx = OrchestrationContext(
        {ServiceType.qianwen: mock_provider},
        settings=Settings(batch_timeout=0.01),
        sleep=no_sleep,
    )
    yield ctx
    await ctx.aclose()


@pytest.fixture
def app(context):
    """Create a FastAPI application wired to the test context."""
    application = create_app(context)
    # ASGITransport does not run the lifespan; attach the context directly
    application.state.context = context
    return application


@pytest.fixture
async def async_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
