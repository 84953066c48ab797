"""Key construction and record mapping."""

import uuid

import pytest

from warc_mapfile.errors import ArgumentError, MalformedRecordError, MissingIdentifierError
from warc_mapfile.formats.clueweb import CLUEWEB09, CLUEWEB12
from warc_mapfile.mapper.keys import KeyPolicy, KeyScope, make_key
from warc_mapfile.mapper.warc_mapper import map_record, parse_value
from warc_mapfile.warc.reader import read_bytes


def _one(data, fmt=CLUEWEB12):
    (rec,) = read_bytes(data, fmt)
    return rec


def test_prefix_is_prepended(record):
    entry = map_record(_one(record("urn:doc-1")), "corpusA-", fmt=CLUEWEB12)
    assert entry.key == "corpusA-urn:doc-1"
    assert entry.key_bytes == b"corpusA-urn:doc-1"


def test_mapping_is_deterministic(record):
    rec = _one(record("urn:doc-1"))
    assert map_record(rec, "p", fmt=CLUEWEB12) == map_record(rec, "p", fmt=CLUEWEB12)


def test_missing_identifier(record):
    rec = _one(record(None))
    with pytest.raises(MissingIdentifierError) as exc:
        map_record(rec, "p", fmt=CLUEWEB12)
    assert exc.value.reason == "MISSING_IDENTIFIER"
    assert isinstance(exc.value, MalformedRecordError)


def test_blank_identifier():
    with pytest.raises(MissingIdentifierError):
        make_key("  ", "p")


def test_value_round_trip(record):
    body = b"HTTP/1.1 200 OK\r\n\r\n<p>\xff\xfe binary</p>"
    rec = _one(record("doc-9", body, extra_headers=[("X-Raw", "café")]))
    entry = map_record(rec, "p-", fmt=CLUEWEB12)
    back = parse_value(entry.value, CLUEWEB12)
    assert back == rec
    assert back.body == body
    assert back.get("X-Raw") == "café"


def test_value_round_trip_clueweb09(record):
    rec = _one(record("clueweb09-en0000-00-00001", b"page", fmt=CLUEWEB09), CLUEWEB09)
    entry = map_record(rec, "", fmt=CLUEWEB09)
    assert entry.value.endswith(b"page\n\n")
    assert parse_value(entry.value, CLUEWEB09) == rec


def test_parse_value_rejects_two_records(record):
    with pytest.raises(MalformedRecordError) as exc:
        parse_value(record("a") + record("b"), CLUEWEB12)
    assert exc.value.reason == "BAD_VALUE"


def test_separator_is_reserved():
    policy = KeyPolicy.from_values(separator="/")
    assert make_key("doc-1", "cw", policy=policy) == "cw/doc-1"
    with pytest.raises(MalformedRecordError) as exc:
        make_key("doc/1", "cw", policy=policy)
    assert exc.value.reason == "RESERVED_SEPARATOR"


def test_per_file_scope():
    policy = KeyPolicy.from_values("per_file", "/")
    assert policy.scope == KeyScope.PER_FILE
    assert make_key("doc-1", "cw-", policy=policy, group="0000tw-00") == "cw-0000tw-00/doc-1"
    with pytest.raises(MalformedRecordError) as exc:
        make_key("doc-1", "cw-", policy=policy, group=None)
    assert exc.value.reason == "MISSING_GROUP"


def test_per_file_scope_uses_record_group(cw12_file):
    from warc_mapfile.warc.reader import read_split
    from warc_mapfile.warc.splits import list_splits

    policy = KeyPolicy.from_values("per_file", "/")
    records = list(read_split(list_splits(str(cw12_file))[0], fmt=CLUEWEB12))
    entry = map_record(records[1], "cw-", fmt=CLUEWEB12, policy=policy)
    assert entry.key == "cw-0000tw-00/clueweb12-0000tw-00-00003"


def test_per_file_scope_needs_separator():
    with pytest.raises(ArgumentError):
        KeyPolicy.from_values("per_file", "")


def test_invalid_policy_values():
    with pytest.raises(ArgumentError):
        KeyPolicy.from_values("everywhere")
    with pytest.raises(ArgumentError):
        KeyPolicy.from_values(style="sha1")


def test_uuid_style():
    policy = KeyPolicy.from_values(style="uuid")
    key = make_key("urn:doc-1", "corpusA-", policy=policy)
    assert key == str(uuid.uuid5(uuid.NAMESPACE_URL, "corpusA-urn:doc-1"))
    assert make_key("urn:doc-2", "corpusA-", policy=policy) != key
