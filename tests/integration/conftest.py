import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from config import ApplicationConfig
from src.api.app import create_app
from src.domain import entities  # noqa: F401  registers every table on SQLModel.metadata


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///./test.db")
    async with engine.begin() as conn:
        # A previous interrupted run may have left tables behind
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def app(engine, session_factory):
    # ASGITransport does not run the lifespan; start and stop the pipeline here
    app = create_app(ApplicationConfig, engine=engine, session_factory=session_factory)
    container = app.state.container
    # Every hour is a business hour, so the wall clock never raises suspicious_activity
    container.audit_logger.business_hours = (0, 23)
    container.start()
    yield app
    await container.stop()


@pytest_asyncio.fixture
async def container(app):
    return app.state.container


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def admin_headers():
    return {"X-Admin-API-Key": ApplicationConfig.ADMIN_API_KEY}
