"""Scoped inserts through a persisted parent, in sync and async sessions."""

from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass, field
from typing import Optional

from relgraph import (
    AsyncDatabase,
    AsyncSession,
    Database,
    SQLiteDialect,
    Session,
    StorageError,
    apply_schema,
    apply_schema_async,
)


@dataclass
class Team:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    name: str = ""


@dataclass
class Member:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    team_id: Optional[int] = field(
        default=None,
        metadata={"fk": (Team, "id"), "relation": "team", "related_name": "members"},
    )
    email: str = field(default="", metadata={"unique": True})


def sync_demo() -> None:
    print("=== Sync Session ===")
    conn = sqlite3.connect(":memory:")
    try:
        db = Database(conn, SQLiteDialect())
        apply_schema(db, Team, Member)
        session = Session(db)

        with session.begin():
            team = session.insert(Team(name="core"))
            # Children get `team_id` from the persisted parent.
            session.related(team, "members").insert_graph(
                [{"email": "a@example.com"}, {"email": "b@example.com"}]
            )

            # A failing graph rolls back to its savepoint; earlier work stays.
            try:
                session.related(team, "members").insert_graph(
                    [{"email": "c@example.com"}, {"email": "a@example.com"}]
                )
            except StorageError as exc:
                print("Rolled back:", exc)

        print("Members:", session.related(team, "members").list())
    finally:
        conn.close()


async def async_demo() -> None:
    print("=== Async Session ===")
    conn = sqlite3.connect(":memory:")
    try:
        db = AsyncDatabase(conn, SQLiteDialect())
        await apply_schema_async(db, Team, Member)

        async with AsyncSession(db) as session:
            result = await session.insert_graph(
                Team,
                {"name": "async", "members": [{"email": "x@example.com"}]},
            )

        loaded = await session.get_related(Team, result.obj.id, include="members")
        print("Loaded:", loaded.to_dict() if loaded else None)
    finally:
        conn.close()


def main() -> None:
    sync_demo()
    asyncio.run(async_demo())


if __name__ == "__main__":
    main()
