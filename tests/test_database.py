from __future__ import annotations

import pytest

from siftdesk.db.database import Database


@pytest.mark.asyncio
async def test_session_round_trip(tmp_path):
    db = Database(str(tmp_path / "session.db"))
    await db.connect()
    try:
        assert await db.load_session() is None
        assert await db.has_session() is False

        await db.save_session({"messages": [], "model_id": "gpt-4.1"})
        assert await db.has_session() is True
        assert await db.load_session() == {"messages": [], "model_id": "gpt-4.1"}

        await db.clear_session()
        assert await db.load_session() is None
    finally:
        await db.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", ["{broken", "[1, 2, 3]"])
async def test_corrupt_session_is_discarded(tmp_path, payload):
    db = Database(str(tmp_path / "session.db"))
    await db.connect()
    try:
        await db.db.execute(
            "INSERT INTO sessions (id, payload, updated_at) VALUES ('current', ?, 0)", (payload,)
        )
        await db.db.commit()

        assert await db.load_session() is None
        assert await db.has_session() is False
    finally:
        await db.close()


def test_unconnected_database_raises():
    with pytest.raises(RuntimeError):
        Database(":memory:").db
