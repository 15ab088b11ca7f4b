"""Graph insert example: one call inserts a person, their parent, pets and movies."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Optional

from relgraph import Database, Repository, SQLiteDialect, ValidationError, apply_schema


@dataclass
class Person:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    parent_id: Optional[int] = None
    name: str = field(default="", metadata={"non_empty": True})
    nickname: Optional[str] = None


@dataclass
class Animal:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    owner_id: Optional[int] = None
    name: str = ""
    species: str = field(default="dog", metadata={"choices": ("dog", "cat")})


@dataclass
class Movie:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    title: str = ""


@dataclass
class PersonMovie:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    person_id: Optional[int] = None
    movie_id: Optional[int] = None


Person.__relations__ = {
    "parent": {"model": Person, "local_key": "parent_id", "remote_key": "id", "type": "belongs_to"},
    "pets": {"model": Animal, "local_key": "id", "remote_key": "owner_id", "type": "has_many"},
    "movies": {
        "model": Movie,
        "local_key": "id",
        "remote_key": "id",
        "through": {"model": PersonMovie, "local_key": "person_id", "remote_key": "movie_id"},
    },
}


class PrintHooks:
    def before_insert(self, obj: Any) -> None:
        print("  inserting", type(obj).__name__)

    def after_insert(self, obj: Any) -> None:
        print("  inserted ", obj)


def main() -> None:
    logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")
    conn = sqlite3.connect(":memory:")
    db = Database(conn, SQLiteDialect())
    people = Repository[Person](db, Person)

    try:
        apply_schema(db, Person, Animal, Movie, PersonMovie)

        # 1) `#id` names a node, `#ref` reuses it, `#ref{id.column}` copies a value.
        result = people.insert_graph(
            {
                "name": "Matti",
                "nickname": "son of #ref{dad.name}",
                "parent": {
                    "#id": "dad",
                    "name": "Isä",
                    "movies": [{"#ref": "cars"}],
                },
                "pets": [{"name": "Fluffy"}, {"name": "Tom", "species": "cat"}],
                "movies": [{"#id": "cars", "title": "Cars"}],
            },
            allowed="[parent.movies, pets, movies]",
            hooks={Person: PrintHooks()},
        )
        print("Inserted graph:", result.to_dict())

        # 2) Reloading with nested includes returns the same shape.
        loaded = people.get_related(result.obj.id, include="[parent.movies, pets, movies]")
        print("Reloaded:", loaded.to_dict() if loaded else None)

        # 3) A relation outside the allow-list fails before anything is written.
        try:
            people.insert_graph({"name": "Nope", "pets": [{"name": "Rex"}]}, allowed="movies")
        except ValidationError as exc:
            print("Rejected:", exc.data)

        # 4) One invalid node aborts the whole graph.
        try:
            people.insert_graph({"name": "Bad", "pets": [{"name": "Ok"}, {"species": "cow"}]})
        except ValidationError as exc:
            print("Invalid", exc.model.__name__ if exc.model else None, exc.data)
        print("People stored:", people.count())
    finally:
        conn.close()


if __name__ == "__main__":
    main()
