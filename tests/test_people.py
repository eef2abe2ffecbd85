"""Tests for app/people.py — person directory and person attributes.

Requirements tested:
- REQ-P1: People are listed alphabetically, rows without a person id skipped
- REQ-P2: Person ids derive from birth date + name slug
- REQ-P3: Only one primary attribute per type per person
"""
import pytest

from app import people
from app.errors import InvalidRequest, RecordNotFound


class TestHelpers:
    def test_build_person_id(self):
        assert people.build_person_id("Mary-Jane O'Neil", "1990-07-04") == "19900704-mary-jane-o-neil"

    def test_build_person_id_other_date_format(self):
        assert people.build_person_id("Al", "07/04/1990") == "19900704-al"

    def test_build_person_id_missing_parts(self):
        assert people.build_person_id("", "1990-07-04") == ""
        assert people.build_person_id("Al", "someday") == ""

    def test_parse_bool(self):
        assert people.parse_bool("Yes")
        assert people.parse_bool(" TRUE ")
        assert not people.parse_bool("")
        assert not people.parse_bool("no")

    def test_to_list(self):
        assert people.to_list("a, b;c|  ") == ["a", "b", "c"]


class TestGetPeople:
    @pytest.mark.asyncio
    async def test_sorted_by_name(self, sheets):
        found = await people.get_people(sheets, "default")
        assert [p["display_name"] for p in found] == ["Amy Root", "Zed Root"]

    @pytest.mark.asyncio
    async def test_skips_rows_without_id(self, sheets):
        sheets.grids["People"].append(["", "Ghost", "", "", "", "", "", "", "", "", ""])
        assert len(await people.get_people(sheets, "default")) == 2

    @pytest.mark.asyncio
    async def test_uses_tenant_tab(self, sheets, tenant_a):
        found = await people.get_people(sheets, tenant_a)
        assert len(found) == 6
        assert found[0]["display_name"] == "Ana"

    @pytest.mark.asyncio
    async def test_is_pinned(self, sheets):
        person = await people.get_person_by_id(sheets, "default", "p1")
        assert person["is_pinned"] is True

    @pytest.mark.asyncio
    async def test_not_found(self, sheets, tenant_a):
        with pytest.raises(RecordNotFound):
            await people.get_person_by_id(sheets, tenant_a, "nobody")


class TestCreatePerson:
    @pytest.mark.asyncio
    async def test_derived_id(self, sheets, tenant_a):
        person = await people.create_person(sheets, tenant_a, {"display_name": "Gus Lee", "birth_date": "2001-05-06"})
        assert person["person_id"] == "20010506-gus-lee"
        assert sheets.records("tenant-a__People")[-1]["tenant_key"] == "tenant-a"

    @pytest.mark.asyncio
    async def test_random_id_without_birth_date(self, sheets, tenant_a):
        person = await people.create_person(sheets, tenant_a, {"display_name": "Gus"})
        assert person["person_id"]

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, sheets, tenant_a):
        with pytest.raises(InvalidRequest):
            await people.create_person(sheets, tenant_a, {"person_id": "p1", "display_name": "Dup"})


class TestUpdatePerson:
    @pytest.mark.asyncio
    async def test_updates_known_fields(self, sheets, tenant_a):
        person = await people.update_person(sheets, tenant_a, "p2", {
            "display_name": "Benjamin", "phones": "123", "photo_file_id": "ignored",
        })
        assert person["display_name"] == "Benjamin"
        assert person["phones"] == "123"
        assert person["photo_file_id"] == ""

    @pytest.mark.asyncio
    async def test_not_found(self, sheets, tenant_a):
        with pytest.raises(RecordNotFound):
            await people.update_person(sheets, tenant_a, "nobody", {"notes": "x"})


class TestAttributes:
    @pytest.mark.asyncio
    async def test_create_and_list(self, sheets, tenant_a):
        await people.create_person_attribute(sheets, tenant_a, "p1", {
            "attribute_type": "Phone", "value_text": "555-1", "sort_order": 2})
        await people.create_person_attribute(sheets, tenant_a, "p1", {
            "attribute_type": "phone", "value_text": "555-0", "sort_order": 1})
        await people.create_person_attribute(sheets, tenant_a, "p2", {
            "attribute_type": "phone", "value_text": "other"})
        attrs = await people.list_person_attributes(sheets, tenant_a, "p1")
        assert [a["value_text"] for a in attrs] == ["555-0", "555-1"]
        assert all(a["attribute_type"] == "phone" and a["tenant_key"] == "tenant-a" for a in attrs)

    @pytest.mark.asyncio
    async def test_person_must_exist(self, sheets, tenant_a):
        with pytest.raises(RecordNotFound):
            await people.create_person_attribute(sheets, tenant_a, "nobody", {
                "attribute_type": "phone", "value_text": "x"})

    @pytest.mark.asyncio
    async def test_single_primary_per_type(self, sheets, tenant_a):
        first = await people.create_person_attribute(sheets, tenant_a, "p1", {
            "attribute_type": "photo", "value_text": "f1", "is_primary": True})
        second = await people.create_person_attribute(sheets, tenant_a, "p1", {
            "attribute_type": "photo", "value_text": "f2", "is_primary": True})
        assert second["errors"] == []
        attrs = {a["attribute_id"]: a for a in await people.list_person_attributes(sheets, tenant_a, "p1")}
        assert attrs[first["attribute_id"]]["is_primary"] is False
        assert attrs[second["attribute_id"]]["is_primary"] is True

    @pytest.mark.asyncio
    async def test_update_makes_primary(self, sheets, tenant_a):
        first = await people.create_person_attribute(sheets, tenant_a, "p1", {
            "attribute_type": "photo", "value_text": "f1", "is_primary": True})
        second = await people.create_person_attribute(sheets, tenant_a, "p1", {
            "attribute_type": "photo", "value_text": "f2"})
        updated = await people.update_person_attribute(sheets, tenant_a, "p1", second["attribute_id"], {
            "is_primary": True, "label": "Best"})
        assert updated["is_primary"] is True
        assert updated["label"] == "Best"
        attrs = {a["attribute_id"]: a for a in await people.list_person_attributes(sheets, tenant_a, "p1")}
        assert attrs[first["attribute_id"]]["is_primary"] is False

    @pytest.mark.asyncio
    async def test_update_missing(self, sheets, tenant_a):
        with pytest.raises(RecordNotFound):
            await people.update_person_attribute(sheets, tenant_a, "p1", "nope", {"label": "x"})

    @pytest.mark.asyncio
    async def test_update_keeps_identity_fields(self, sheets, tenant_a):
        attr = await people.create_person_attribute(sheets, tenant_a, "p1", {
            "attribute_type": "phone", "value_text": "1"})
        updated = await people.update_person_attribute(sheets, tenant_a, "p1", attr["attribute_id"], {
            "tenant_key": "tenant-b", "person_id": "p9", "value_text": "2"})
        assert (updated["tenant_key"], updated["person_id"], updated["value_text"]) == ("tenant-a", "p1", "2")

    @pytest.mark.asyncio
    async def test_delete(self, sheets, tenant_a):
        attr = await people.create_person_attribute(sheets, tenant_a, "p1", {
            "attribute_type": "phone", "value_text": "1"})
        assert await people.delete_person_attribute(sheets, tenant_a, "p1", attr["attribute_id"]) is True
        assert await people.delete_person_attribute(sheets, tenant_a, "p1", attr["attribute_id"]) is False
