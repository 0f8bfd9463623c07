from __future__ import annotations

import httpx
import pytest_asyncio

from secure_docs.settings import MIB

from tests.acceptance.app import build_app

CAPACITY = 100 * MIB


@pytest_asyncio.fixture
async def acceptance_store(make_store):
    return await make_store(quota_capacity_bytes=CAPACITY)


@pytest_asyncio.fixture
async def client(acceptance_store):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=build_app(acceptance_store)),
        base_url="http://testserver",
        timeout=10.0,
    ) as c:
        yield c
