from __future__ import annotations

import pytest
import pytest_asyncio

from siftdesk.config import Settings
from siftdesk.db.database import Database


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        google_api_key="",
        openai_api_key="",
        openrouter_api_key="",
        mistral_api_key="",
        render_interval=0.0,
        autosave_delay=0.01,
        link_check_timeout=1.0,
        cache_enabled=True,
    )


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "siftdesk-test.db"))
    await database.connect()
    yield database
    await database.close()
