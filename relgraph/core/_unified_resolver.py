"""Argument resolution for unified repositories: `(Model, obj)` or just `obj`."""

from __future__ import annotations

from typing import Sequence, Type, TypeVar, cast

from .models import DataclassModel, require_dataclass_model

T = TypeVar("T", bound=DataclassModel)


def resolve_model_and_obj(
    model_or_object: Type[T] | T,
    obj: T | None = None,
) -> tuple[Type[T], T]:
    """Return `(model, obj)` whether or not the model was passed explicitly."""

    if obj is None:
        if isinstance(model_or_object, type):
            raise TypeError(f"An instance of {model_or_object.__name__} is required.")
        model = type(model_or_object)
        require_dataclass_model(model)
        return cast(Type[T], model), cast(T, model_or_object)

    model = _explicit_model(model_or_object)
    if not isinstance(obj, model):
        raise TypeError(f"Expected a {model.__name__} instance, got {type(obj).__name__}.")
    return model, obj


def resolve_model_and_objects(
    model_or_list: Type[T] | Sequence[T],
    objects: Sequence[T] | None = None,
) -> tuple[Type[T], Sequence[T]]:
    """Return `(model, objects)`; an implicit model is taken from the first object."""

    if objects is None:
        if isinstance(model_or_list, type):
            raise ValueError(f"Objects are required: insert_many({model_or_list.__name__}, objects).")
        objects = cast(Sequence[T], model_or_list)
        if not objects:
            raise ValueError("Cannot infer the model of an empty sequence; pass it explicitly.")
        model = cast(Type[T], type(objects[0]))
        require_dataclass_model(model)
    else:
        model = _explicit_model(model_or_list)

    for item in objects:
        if not isinstance(item, model):
            raise TypeError(f"All objects must be {model.__name__} instances.")
    return model, objects


def _explicit_model(value: object) -> Type[T]:
    if not isinstance(value, type):
        raise TypeError("First argument must be a model class when objects are also given.")
    require_dataclass_model(value)
    return cast(Type[T], value)
