"""
Envelope normalization for catalog API responses.

The backend wraps collections in several ways depending on the endpoint and
its serializer settings:

- a bare JSON array: ``[{...}, {...}]``
- a counted-collection wrapper: ``{"$id": "1", "$values": [{...}]}``
- a data wrapper: ``{"data": [{...}]}``
- a flattened object map: ``{"0": {...}, "1": {...}}``

Every call site (records, groups, per-group listings, orders, order details)
goes through ``normalize`` with a predicate describing what one entity looks
like. Unrecognized shapes produce an empty list and a warning; nothing here
raises.
"""
import enum
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Callable, Type, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

EntityPredicate = Callable[[Mapping], bool]
M = TypeVar("M", bound=BaseModel)


class EnvelopeKind(str, enum.Enum):
    BARE = "bare"
    WRAPPED_VALUES = "$values"
    WRAPPED_DATA = "data"
    FLATTENED = "flattened"
    UNRECOGNIZED = "unrecognized"


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _has_int(entity: Mapping, key: str) -> bool:
    value = entity.get(key)
    return isinstance(value, int) and not isinstance(value, bool)


def looks_like_record(entity: Mapping) -> bool:
    return (
        _has_int(entity, "idRecord")
        and isinstance(entity.get("titleRecord"), str)
        and isinstance(entity.get("stock"), (int, float))
    )


def looks_like_group(entity: Mapping) -> bool:
    return _has_int(entity, "idGroup") and isinstance(entity.get("nameGroup"), str)


def looks_like_order(entity: Mapping) -> bool:
    return _has_int(entity, "idOrder")


def looks_like_cart_line(entity: Mapping) -> bool:
    return _has_int(entity, "idRecord")


def looks_like_any(entity: Mapping) -> bool:
    return True


def _matching_values(payload: Mapping, looks_like: EntityPredicate) -> list[Mapping]:
    return [
        value for value in payload.values()
        if isinstance(value, Mapping) and looks_like(value)
    ]


def classify(payload: Any, looks_like: EntityPredicate) -> EnvelopeKind:
    if _is_sequence(payload):
        return EnvelopeKind.BARE
    if isinstance(payload, Mapping):
        if _is_sequence(payload.get("$values")):
            return EnvelopeKind.WRAPPED_VALUES
        if _is_sequence(payload.get("data")):
            return EnvelopeKind.WRAPPED_DATA
        if _matching_values(payload, looks_like):
            return EnvelopeKind.FLATTENED
    return EnvelopeKind.UNRECOGNIZED


def normalize(payload: Any, looks_like: EntityPredicate = looks_like_any) -> list[dict]:
    """Extract the ordered entity list from ``payload``."""
    kind = classify(payload, looks_like)

    if kind is EnvelopeKind.BARE:
        items = payload
    elif kind is EnvelopeKind.WRAPPED_VALUES:
        items = payload["$values"]
    elif kind is EnvelopeKind.WRAPPED_DATA:
        items = payload["data"]
    elif kind is EnvelopeKind.FLATTENED:
        items = _matching_values(payload, looks_like)
    else:
        logger.warning(f"Unexpected response shape ({type(payload).__name__}), treating as empty")
        return []

    entities = [dict(item) for item in items if isinstance(item, Mapping)]
    if len(entities) != len(items):
        logger.debug(f"Dropped {len(items) - len(entities)} non-object items from {kind.value} envelope")
    return entities


def parse_entities(payload: Any, model: Type[M], looks_like: EntityPredicate = looks_like_any) -> list[M]:
    """``normalize`` then validate each entity, skipping the ones that do not fit ``model``."""
    parsed = []
    for entity in normalize(payload, looks_like):
        try:
            parsed.append(model.model_validate(entity))
        except ValidationError as e:
            logger.warning(f"Skipping undecodable {model.__name__}: {e.error_count()} error(s) in {entity!r}")
    return parsed
