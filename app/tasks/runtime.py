"""Shared plumbing for running async service code inside sync Celery tasks."""

import asyncio
import uuid
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.distribution.kv_store import RedisKeyValueStore
from app.distribution.selector import ModelSelector
from app.gateway.gateway import ProviderGateway


def run_async(coro):
    """Run an async coroutine from sync Celery task context.

    Creates a fresh event loop each time to avoid conflicts with
    the module-level SQLAlchemy engine (which may be bound to a
    different loop created by uvicorn).
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def make_session_factory():
    """Create a fresh async engine + session factory for Celery worker context.

    The module-level engine from app.db.postgres is bound to the ops app's
    event loop and cannot be reused in a new event loop created by run_async().
    """
    engine = create_async_engine(
        settings.postgres_url,
        echo=False,
        pool_size=5,
        max_overflow=5,
        pool_pre_ping=True,
    )
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False), engine


def new_session_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


class TaskContext:
    """Per-task resources: session factory, shared-state store, selector and gateway."""

    def __init__(self, session_factory, store: RedisKeyValueStore):
        self.session_factory = session_factory
        self.store = store
        self.selector = ModelSelector(store)
        self.gateway = ProviderGateway(selector=self.selector)


@asynccontextmanager
async def task_context():
    """Open a TaskContext and dispose of its engine and redis client afterwards."""
    session_factory, engine = make_session_factory()
    store = RedisKeyValueStore(settings.redis_url)
    try:
        yield TaskContext(session_factory, store)
    finally:
        await store.close()
        await engine.dispose()
