from __future__ import annotations

import inspect
import sqlite3
import unittest
from dataclasses import dataclass, field
from typing import Optional

from relgraph import (
    C,
    AsyncDatabase,
    AsyncRepository,
    AsyncUnifiedRepository,
    OrderBy,
    RelatedResult,
    Repository,
    SQLiteDialect,
    apply_schema_async,
)


@dataclass
class UserRow:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    email: str = ""
    age: Optional[int] = None


@dataclass
class AuthorRow:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    name: str = ""


@dataclass
class PostRow:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    author_id: Optional[int] = field(
        default=None,
        metadata={
            "fk": (AuthorRow, "id"),
            "relation": "author",
            "related_name": "posts",
        },
    )
    title: str = ""


@dataclass
class MultiPkRow:
    id1: int = field(default=0, metadata={"pk": True})
    id2: int = field(default=0, metadata={"pk": True})


class AsyncRepositorySQLiteTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.conn = sqlite3.connect(":memory:")
        self.db = AsyncDatabase(self.conn, SQLiteDialect())
        await apply_schema_async(self.db, UserRow, AuthorRow, PostRow)
        self.users = AsyncRepository[UserRow](self.db, UserRow)
        self.authors = AsyncRepository[AuthorRow](self.db, AuthorRow)
        self.posts = AsyncRepository[PostRow](self.db, PostRow)

    async def asyncTearDown(self) -> None:
        self.conn.close()

    async def test_async_repository_surface_matches_sync_names(self) -> None:
        names = [
            "insert",
            "insert_many",
            "update",
            "delete",
            "get",
            "list",
            "count",
            "insert_graph",
            "create",
            "get_related",
            "list_related",
        ]
        for name in names:
            with self.subTest(name=name):
                self.assertTrue(hasattr(Repository, name))
                self.assertTrue(inspect.iscoroutinefunction(getattr(AsyncRepository, name)))
        self.assertTrue(callable(AsyncRepository.related))

    async def test_crud(self) -> None:
        user = await self.users.insert(UserRow(email="a@example.com", age=20))
        self.assertIsNotNone(user.id)

        user.age = 21
        self.assertEqual(await self.users.update(user), 1)
        self.assertEqual((await self.users.get(user.id)).age, 21)
        self.assertEqual(await self.users.delete(user), 1)
        self.assertIsNone(await self.users.get(user.id))

        with self.assertRaises(ValueError):
            await self.users.update(UserRow(email="no-pk"))

    async def test_list_and_count(self) -> None:
        async with self.db.transaction():
            await self.users.insert_many(
                [
                    UserRow(email="a@example.com", age=20),
                    UserRow(email="b@example.com", age=30),
                    UserRow(email="c@example.com", age=None),
                ]
            )

        rows = await self.users.list(
            where=C.in_("age", [20, 30]),
            order_by=[OrderBy("age", desc=True)],
            limit=1,
        )
        self.assertEqual([row.email for row in rows], ["b@example.com"])
        self.assertEqual(await self.users.count(), 3)
        self.assertEqual(await self.users.count(where=C.in_("age", [20, 30])), 2)

    async def test_repository_requires_dataclass_and_single_pk(self) -> None:
        with self.assertRaises(TypeError):
            AsyncRepository(self.db, object)  # type: ignore[arg-type]
        with self.assertRaises(ValueError):
            AsyncRepository(self.db, MultiPkRow)

    async def test_create_and_eager_load_inferred_relations(self) -> None:
        author = AuthorRow(name="Alice")
        await self.authors.create(author, relations={"posts": [PostRow(title="A"), PostRow(title="B")]})

        loaded = await self.authors.get_related(author.id, include="posts.author")
        posts = loaded.relations["posts"]
        self.assertEqual([post.obj.title for post in posts], ["A", "B"])
        self.assertTrue(all(isinstance(post, RelatedResult) for post in posts))
        self.assertTrue(all(post.relations["author"].id == author.id for post in posts))

        listed = await self.posts.list_related(include="author", order_by=[OrderBy("id")])
        self.assertEqual([row.relations["author"].name for row in listed], ["Alice", "Alice"])
        self.assertIsNone(await self.authors.get_related(999, include="posts"))

    async def test_create_rejects_bad_relations_without_writing(self) -> None:
        with self.assertRaises(ValueError):
            await self.authors.create(AuthorRow(name="x"), relations={"missing": []})
        with self.assertRaises(TypeError):
            await self.authors.create(AuthorRow(name="x"), relations={"posts": PostRow()})
        with self.assertRaises(ValueError):
            await self.posts.list_related(include="missing")

        self.assertEqual(await self.authors.count(), 0)

    async def test_related_query_scopes_reads(self) -> None:
        author = await self.authors.insert(AuthorRow(name="Scoped"))
        await self.authors.related(author, "posts").insert_graph([{"title": "one"}, {"title": "two"}])

        posts = await self.authors.related(author, "posts").list()
        self.assertEqual([post.title for post in posts], ["one", "two"])

    async def test_unified_repository(self) -> None:
        hub = AsyncUnifiedRepository(self.db)
        user = await hub.insert(UserRow(email="hub@example.com"))

        self.assertIs(hub.repo(UserRow), hub.repo(UserRow))
        self.assertEqual((await hub.get(UserRow, user.id)).email, "hub@example.com")
        self.assertEqual(await hub.count(UserRow), 1)


if __name__ == "__main__":
    unittest.main()
