"""Tests for the normalization layer."""

import logging

import pytest

from cx_voice_connector.config import PhoneNumberRecord
from cx_voice_connector.exceptions import RemoteUnavailable
from cx_voice_connector.normalize import (
    SOURCE_LOCAL,
    SOURCE_REMOTE,
    ElevenLabsRawNumber,
    RemoteNumberRecord,
    VapiRawNumber,
    extract_entries,
    fetch_for_display,
    fetch_for_reconciliation,
    local_fallback_records,
    normalize_for_display,
    normalize_for_reconciliation,
    normalize_listing,
    parse_raw_number,
)


class TestParseRawNumber:
    def test_vapi_byo(self):
        parsed = parse_raw_number("vapi", {
            "id": "abc", "provider": "byo-phone-number", "number": "+12025551234", "name": "Main",
        })
        assert isinstance(parsed, VapiRawNumber)
        assert parsed.number == "+12025551234"
        assert parsed.remote_id == "abc"
        assert parsed.label == "Main"

    def test_vapi_non_byo_skipped(self):
        assert parse_raw_number("vapi", {"id": "x", "provider": "twilio", "number": "+12025551234"}) is None

    def test_retell_alternate_spelling(self):
        assert parse_raw_number("retell", {"phone_number": "+12025551234"}).number == "+12025551234"
        parsed = parse_raw_number("retell", {"phoneNumber": "+12025551234"})
        assert parsed.number == "+12025551234"
        assert parsed.remote_id == "+12025551234"

    def test_elevenlabs_fields(self):
        parsed = parse_raw_number("11labs", {"phone_number": " +12025551234 ", "phone_number_id": 7, "label": "L"})
        assert isinstance(parsed, ElevenLabsRawNumber)
        assert parsed.number == "+12025551234"
        assert parsed.remote_id == "7"
        assert parsed.label == "L"

    def test_invalid_entries_dropped_with_reason(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert parse_raw_number("retell", {"phone_number": "not-a-number"}) is None
            assert parse_raw_number("retell", {"agent_id": "a"}) is None
            assert parse_raw_number("retell", "+12025551234") is None
        assert "dropping" in caplog.text


class TestExtractEntries:
    def test_array(self):
        assert extract_entries("vapi", [1]) == [1]

    @pytest.mark.parametrize("wrapper", ["phone_numbers", "data", "results", "items"])
    def test_elevenlabs_wrappers(self, wrapper):
        assert extract_entries("elevenlabs", {wrapper: [1, 2]}) == [1, 2]

    def test_wrappers_only_for_elevenlabs(self):
        assert extract_entries("vapi", {"data": [1]}) is None

    def test_no_array(self):
        assert extract_entries("elevenlabs", {"detail": "x"}) is None
        assert extract_entries("retell", None) is None


class TestNormalizeForReconciliation:
    def test_vapi_filters_byo(self):
        records = normalize_for_reconciliation("vapi", [
            {"id": "a", "provider": "byo-phone-number", "number": "+12025551234"},
            {"id": "b", "provider": "vapi", "number": "+12025559999"},
        ])
        assert [r.number for r in records] == ["+12025551234"]
        assert records[0].source == SOURCE_REMOTE

    def test_empty_array_is_empty(self):
        assert normalize_for_reconciliation("retell", []) == []

    def test_bad_entry_does_not_truncate(self):
        records = normalize_for_reconciliation("retell", [
            {"phone_number": "+12025550001"},
            {"phone_number": None},
            {"phone_number": "+12025550002"},
        ])
        assert [r.number for r in records] == ["+12025550001", "+12025550002"]

    def test_listing_collects_rejected_numbers(self):
        listing = normalize_listing("elevenlabs", {"phone_numbers": [
            {"phone_number": "+447700900001"},
            {"phone_number": " 447700900002 "},
            {"label": "no number"},
        ]})
        assert [r.number for r in listing.records] == ["+447700900001"]
        assert listing.rejected == ["447700900002"]

    def test_unexpected_schema_raises(self):
        with pytest.raises(RemoteUnavailable):
            normalize_for_reconciliation("elevenlabs", {"detail": "unexpected"})
        with pytest.raises(RemoteUnavailable):
            normalize_for_reconciliation("vapi", None)

    def test_raw_payload_ignored_in_comparison(self):
        a = RemoteNumberRecord("+1555", "id", raw={"x": 1})
        b = RemoteNumberRecord("+1555", "id", raw={"y": 2})
        assert a == b


class TestNormalizeForDisplay:
    def test_elevenlabs_zero_entries_falls_back(self, populated_store):
        config = populated_store.read_all()
        config.elevenlabs.api_key = "xi"
        config.domains["example.com"].section("11labs", create=True)
        config.elevenlabs.phone_numbers["+447700900000"] = PhoneNumberRecord("+447700900000", "pn-9", "s")

        records = normalize_for_display("elevenlabs", {"detail": "odd"}, config)
        assert [r.number for r in records] == ["+447700900000"]
        assert records[0].source == SOURCE_LOCAL
        assert records[0].label == "[Local Config] +447700900000"

    def test_other_providers_do_not_fall_back(self, populated_store):
        config = populated_store.read_all()
        assert normalize_for_display("vapi", [], config) == []
        assert normalize_for_display("vapi", {"unexpected": True}, config) == []

    def test_local_fallback_unions_global_and_domains(self, populated_store):
        records = local_fallback_records("vapi", populated_store.read_all())
        assert {r.number for r in records} == {"+12025551234", "+12025550001", "+12025550002"}
        assert all(r.source == SOURCE_LOCAL for r in records)


class TestFetch:
    @pytest.mark.asyncio
    async def test_reconciliation_propagates_errors(self, make_client):
        client = make_client(list_error=RemoteUnavailable("VAPI", "down"))
        with pytest.raises(RemoteUnavailable):
            await fetch_for_reconciliation(client, "vapi")

    @pytest.mark.asyncio
    async def test_reconciliation_keeps_rejected_values(self, make_client):
        client = make_client(list_response=[
            {"id": "a", "provider": "byo-phone-number", "number": "+12025550001"},
            {"id": "b", "provider": "byo-phone-number", "number": "12025550002"},
            {"id": "c", "provider": "twilio", "number": "12025550003"},
            "garbage",
        ])
        listing = await fetch_for_reconciliation(client, "vapi")
        assert [r.number for r in listing.records] == ["+12025550001"]
        assert listing.rejected == ["12025550002"]

    @pytest.mark.asyncio
    async def test_display_falls_back_on_error(self, make_client, populated_store):
        client = make_client(list_error=RemoteUnavailable("VAPI", "down"))
        records, error = await fetch_for_display(client, "vapi", populated_store.read_all())
        assert error == "VAPI: down"
        assert {r.number for r in records} == {"+12025551234", "+12025550001", "+12025550002"}
        assert all(r.source == SOURCE_LOCAL for r in records)

    @pytest.mark.asyncio
    async def test_display_success(self, make_client, populated_store):
        client = make_client(list_response=[{"phone_number": "+19995551111"}])
        records, error = await fetch_for_display(client, "retell", populated_store.read_all())
        assert error is None
        assert [r.number for r in records] == ["+19995551111"]
