"""
Shared test fixtures for the Caselli agent core.

Every test gets its own SQLite database under tmp_path, real HTTP clients
backed by httpx.MockTransport, and a scripted inference client. Nothing
leaves the process.
"""

import os
import uuid

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from pydantic_ai.models.test import TestModel
from sqlalchemy.ext.asyncio import create_async_engine

# Set test environment before importing the app so get_settings() never
# falls over on a missing key
os.environ.update(
    {
        "APP_ENV": "test",
        "LOG_LEVEL": "DEBUG",
        "ANTHROPIC_API_KEY": "sk-ant-REDACTED",
    }
)

from caselli.app import create_app  # noqa: E402
from caselli.clients.auth import SupabaseAuthClient  # noqa: E402
from caselli.clients.property_data import PropertyDataClient  # noqa: E402
from caselli.clients.storage import StorageClient  # noqa: E402
from caselli.config import Settings  # noqa: E402
from caselli.db.database import create_session_factory, create_tables, unit_of_work  # noqa: E402
from caselli.db.repositories import ConversationsRepository  # noqa: E402
from caselli.services.agent_orchestrator import AgentOrchestrator  # noqa: E402
from caselli.services.background import BackgroundDispatcher  # noqa: E402
from caselli.services.container import build_services  # noqa: E402
from caselli.services.enrichment_service import PropertyEnrichmentService  # noqa: E402
from caselli.tools.executor import ToolContext  # noqa: E402
from caselli.tools.registry import build_executor  # noqa: E402
from tests.fakes import (  # noqa: E402
    GOOD_TOKEN,
    USER_ID,
    PropertyAPI,
    ScriptedLLM,
    StorageAPI,
    auth_transport,
)

TITLE = "Listing strategy for Main St"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings for one test, isolated from any local .env file."""
    return Settings(
        _env_file=None,
        app_env="test",
        log_level="DEBUG",
        anthropic_api_key="sk-ant-REDACTED",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'caselli.db'}",
        PROPERTY_API_KEY="test-property-key",
        supabase_url="http://supabase.test",
        supabase_anon_key="anon-key",
        supabase_service_role_key="service-role-key",
        upstream_retry_delay_seconds=0,
    )


@pytest.fixture
async def engine(settings):
    engine = create_async_engine(settings.database_url)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def owner_id() -> uuid.UUID:
    return USER_ID


@pytest.fixture
async def conversation_id(session_factory, owner_id) -> uuid.UUID:
    """An existing, untitled conversation owned by the test user."""
    conversation_id = uuid.uuid4()
    async with unit_of_work(session_factory) as session:
        await ConversationsRepository(session).get_or_create(owner_id, conversation_id)
    return conversation_id


# ===== Upstream HTTP services =====


@pytest.fixture
def property_api() -> PropertyAPI:
    return PropertyAPI()


@pytest.fixture
def storage_api() -> StorageAPI:
    return StorageAPI()


@pytest.fixture
async def property_client(settings, property_api):
    client = PropertyDataClient(
        settings,
        http_client=httpx.AsyncClient(
            transport=property_api.transport(), base_url=settings.property_api_base_url
        ),
    )
    yield client
    await client.close()


@pytest.fixture
async def storage_client(settings, storage_api):
    client = StorageClient(
        settings,
        http_client=httpx.AsyncClient(
            transport=storage_api.transport(),
            base_url=f"{settings.supabase_url}/storage/v1",
        ),
    )
    yield client
    await client.close()


@pytest.fixture
async def auth_client(settings):
    client = SupabaseAuthClient(
        settings,
        http_client=httpx.AsyncClient(
            transport=auth_transport(), base_url=f"{settings.supabase_url}/auth/v1"
        ),
    )
    yield client
    await client.close()


# ===== Tool execution and the loop =====


@pytest.fixture
async def dispatcher():
    dispatcher = BackgroundDispatcher()
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture
def enrichment(property_client, session_factory) -> PropertyEnrichmentService:
    return PropertyEnrichmentService(property_client, session_factory)


@pytest.fixture
def executor(settings, enrichment, storage_client, dispatcher):
    return build_executor(
        enrichment, storage_client, settings.signed_url_ttl_seconds, dispatcher
    )


@pytest.fixture
def tool_ctx(owner_id, session_factory, conversation_id) -> ToolContext:
    return ToolContext(
        owner_id=owner_id,
        session_factory=session_factory,
        conversation_id=conversation_id,
    )


@pytest.fixture
def llm() -> ScriptedLLM:
    """Inference client with an empty script; tests append rounds."""
    return ScriptedLLM()


@pytest.fixture
def orchestrator(settings, llm, executor, session_factory) -> AgentOrchestrator:
    return AgentOrchestrator(settings, llm, executor, session_factory)


# ===== Full application =====


@pytest.fixture
async def services(settings, session_factory, auth_client, llm, property_client, storage_client):
    """
    The production service graph with every upstream faked.

    Memory extraction is gated off here (its structured output would need a
    different TestModel than titles); test_memory_service covers it.
    """
    app_settings = settings.model_copy(update={"memory_min_text_length": 100_000})
    services = build_services(
        app_settings,
        session_factory,
        auth=auth_client,
        llm=llm,
        property_data=property_client,
        storage=storage_client,
        utility_model=TestModel(custom_output_text=TITLE),
    )
    yield services
    await services.close()


@pytest.fixture
async def async_client(services):
    """Async HTTP client bound to the app through ASGITransport (no lifespan)."""
    app = create_app(services.settings, services)
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": f"Bearer {GOOD_TOKEN}"},
    ) as client:
        yield client
