import logging

import pytest

from catalog_sync.schemas.record import Group, Record
from catalog_sync.services.envelope import (
    EnvelopeKind,
    classify,
    looks_like_group,
    looks_like_record,
    normalize,
    parse_entities,
)
from conftest import record_payload


RECORDS = [record_payload(1, "Kind of Blue"), record_payload(2, "Blue Train")]


@pytest.mark.parametrize(
    "payload, kind",
    [
        (RECORDS, EnvelopeKind.BARE),
        ({"$id": "1", "$values": RECORDS}, EnvelopeKind.WRAPPED_VALUES),
        ({"data": RECORDS}, EnvelopeKind.WRAPPED_DATA),
        ({"0": RECORDS[0], "1": RECORDS[1]}, EnvelopeKind.FLATTENED),
    ],
)
def test_every_envelope_yields_same_records(payload, kind):
    assert classify(payload, looks_like_record) is kind
    assert normalize(payload, looks_like_record) == RECORDS


def test_values_wrapper_takes_priority_over_data():
    payload = {"$values": RECORDS[:1], "data": RECORDS}

    assert normalize(payload, looks_like_record) == RECORDS[:1]


@pytest.mark.parametrize("payload", [None, {}, "records", 42, {"message": "ok"}])
def test_malformed_payload_is_empty(payload, caplog):
    with caplog.at_level(logging.WARNING):
        assert normalize(payload, looks_like_record) == []

    assert "Unexpected response shape" in caplog.text


def test_flattened_map_keeps_only_entity_values():
    payload = {"$id": "7", "first": RECORDS[0], "count": 2, "second": RECORDS[1], "other": {"foo": 1}}

    assert normalize(payload, looks_like_record) == RECORDS


def test_non_object_items_are_dropped():
    assert normalize([RECORDS[0], None, "x", RECORDS[1]], looks_like_record) == RECORDS


def test_same_routine_serves_groups():
    groups = {"$values": [{"idGroup": 3, "nameGroup": "Miles Davis Quintet"}]}

    parsed = parse_entities(groups, Group, looks_like_group)

    assert parsed == [Group(id=3, name="Miles Davis Quintet")]


def test_parse_entities_skips_undecodable_items(caplog):
    payload = [record_payload(1, "Giant Steps"), record_payload(2, "Bad", price="not a price")]

    with caplog.at_level(logging.WARNING):
        records = parse_entities(payload, Record, looks_like_record)

    assert [record.id for record in records] == [1]
    assert "Skipping undecodable Record" in caplog.text


def test_parse_entities_fills_nulls_with_defaults():
    payload = [{"idRecord": 4, "titleRecord": "A Love Supreme", "stock": 2, "price": None, "discontinued": None}]

    record = parse_entities(payload, Record, looks_like_record)[0]

    assert record.price == 0
    assert record.discontinued is False
    assert record.in_cart is False
    assert record.amount == 0
