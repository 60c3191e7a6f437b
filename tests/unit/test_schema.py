"""Unit tests for the slim/rich row mapping (keydeck/keys/schema.py)."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from keydeck.keys.models import KeyDraft, KeyPatch, KeyRecord
from keydeck.keys.schema import (
    RICH,
    SLIM,
    detect_variant,
    draft_to_row,
    parse_timestamp,
    patch_to_row,
    record_to_row,
    row_to_record,
)

SLIM_ROW = {
    "id": "abc",
    "name": "Slim key",
    "key": "tvly-slim000000000000000000000000000",
    "type": "write",
    "usage": 5,
    "created_at": "2024-03-01T12:00:00Z",
}

RICH_ROW = {
    "id": "def",
    "name": "Rich key",
    "description": "CI pipeline",
    "key": "tvly-rich000000000000000000000000000",
    "permissions": "admin",
    "limit_usage": True,
    "monthly_limit": 250,
    "usage_count": 17,
    "last_used_at": "2024-04-02T08:30:00+00:00",
    "created_at": "2024-03-01T12:00:00+00:00",
    "updated_at": "2024-04-01T12:00:00+00:00",
}


class TestDetectVariant:

    def test_slim_row(self) -> None:
        assert detect_variant(SLIM_ROW) == "slim"

    def test_rich_row(self) -> None:
        assert detect_variant(RICH_ROW) == "rich"


class TestRowToRecord:

    def test_slim_row_defaults_rich_fields(self) -> None:
        record = row_to_record(SLIM_ROW, SLIM)
        assert record.id == "abc"
        assert record.secret == SLIM_ROW["key"]
        assert record.permissions == "write"
        assert record.usage_count == 5
        assert record.description == ""
        assert record.limit_usage is False
        assert record.monthly_limit == 1000
        assert record.last_used_at is None

    def test_slim_row_updated_at_falls_back_to_created_at(self) -> None:
        record = row_to_record(SLIM_ROW, SLIM)
        assert record.created_at == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert record.updated_at == record.created_at

    def test_rich_row_fully_mapped(self) -> None:
        record = row_to_record(RICH_ROW, RICH)
        assert record.permissions == "admin"
        assert record.usage_count == 17
        assert record.description == "CI pipeline"
        assert record.limit_usage is True
        assert record.monthly_limit == 250
        assert record.last_used_at == datetime(2024, 4, 2, 8, 30, tzinfo=timezone.utc)
        assert record.updated_at == datetime(2024, 4, 1, 12, 0, tzinfo=timezone.utc)

    def test_rich_row_null_monthly_limit_defaults(self) -> None:
        row = {**RICH_ROW, "monthly_limit": None}
        assert row_to_record(row, RICH).monthly_limit == 1000

    @pytest.mark.parametrize("value", [None, "", "superuser", 3])
    def test_unknown_permission_becomes_read(self, value) -> None:
        row = {**SLIM_ROW, "type": value}
        assert row_to_record(row, SLIM).permissions == "read"

    @pytest.mark.parametrize("value", [None, -4, "many"])
    def test_bad_usage_becomes_zero(self, value) -> None:
        row = {**SLIM_ROW, "usage": value}
        assert row_to_record(row, SLIM).usage_count == 0

    def test_missing_created_at(self) -> None:
        row = {k: v for k, v in SLIM_ROW.items() if k != "created_at"}
        record = row_to_record(row, SLIM)
        assert record.created_at is None
        assert record.updated_at is None


class TestCanonicalToRow:

    def test_draft_to_slim_row(self) -> None:
        draft = KeyDraft(name="n", permissions="admin", secret="tvly-x", description="ignored")
        row = draft_to_row(draft, SLIM)
        assert row == {"name": "n", "key": "tvly-x", "type": "admin", "usage": 0}

    def test_draft_to_rich_row(self) -> None:
        draft = KeyDraft(
            name="n", permissions="write", secret="tvly-x",
            description="d", limit_usage=True, monthly_limit=10,
        )
        row = draft_to_row(draft, RICH)
        assert row["permissions"] == "write"
        assert row["usage_count"] == 0
        assert row["description"] == "d"
        assert row["limit_usage"] is True
        assert row["monthly_limit"] == 10

    def test_patch_writes_only_given_fields_slim(self) -> None:
        assert patch_to_row(KeyPatch(name="renamed"), SLIM) == {"name": "renamed"}

    def test_patch_normalizes_permission(self) -> None:
        assert patch_to_row(KeyPatch(permissions="ROOT"), SLIM) == {"type": "read"}

    def test_patch_rich_touches_updated_at(self) -> None:
        row = patch_to_row(KeyPatch(permissions="admin"), RICH)
        assert row["permissions"] == "admin"
        assert "updated_at" in row
        assert "name" not in row

    def test_empty_patch_is_empty_row(self) -> None:
        assert patch_to_row(KeyPatch(), RICH) == {}

    def test_record_to_slim_row_drops_rich_fields(self) -> None:
        record = row_to_record(RICH_ROW, RICH)
        row = record_to_row(record, SLIM)
        assert set(row) == {"id", "name", "key", "type", "usage", "created_at"}

    def test_record_to_rich_row(self) -> None:
        record = KeyRecord(id="1", name="n", secret="s", description="d")
        row = record_to_row(record, RICH)
        assert row["description"] == "d"
        assert row["monthly_limit"] == 1000
        assert row["created_at"] is None


class TestOverrides:

    def test_override_column_name(self) -> None:
        mapping = SLIM.with_overrides({"secret": "api_key"})
        record = row_to_record({**SLIM_ROW, "api_key": "tvly-over"}, mapping)
        assert record.secret == "tvly-over"
        assert mapping.variant == "slim"

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown field"):
            SLIM.with_overrides({"colour": "x"})

    def test_empty_overrides_return_same_mapping(self) -> None:
        assert SLIM.with_overrides({}) is SLIM


class TestParseTimestamp:

    def test_z_suffix(self) -> None:
        assert parse_timestamp("2024-01-01T00:00:00Z") == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_datetime_passthrough(self) -> None:
        now = datetime.now(timezone.utc)
        assert parse_timestamp(now) is now

    @pytest.mark.parametrize("value", [None, "", "yesterday", 12345])
    def test_unparseable_is_none(self, value) -> None:
        assert parse_timestamp(value) is None


class TestRoundTrip:

    def test_rich_round_trip_preserves_name_and_permissions(self) -> None:
        row = record_to_row(row_to_record(RICH_ROW, RICH), RICH)
        assert row["name"] == RICH_ROW["name"]
        assert row["permissions"] == RICH_ROW["permissions"]
        assert row["description"] == RICH_ROW["description"]

    def test_rich_to_slim_is_lossy_but_record_keeps_fields(self) -> None:
        record = row_to_record(RICH_ROW, RICH)
        slim_row = record_to_row(record, SLIM)
        assert slim_row["name"] == RICH_ROW["name"]
        assert slim_row["type"] == RICH_ROW["permissions"]
        assert "description" not in slim_row
        assert "monthly_limit" not in slim_row
        # The canonical record still carries them
        assert record.description == "CI pipeline"
        assert record.monthly_limit == 250
