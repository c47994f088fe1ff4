"""
test_invariants.py - 레코드 불변식 검사 테스트
"""

from dataclasses import replace

import pytest

from src.core.hashing import compute_bytes_hash
from src.core.invariants import check_derived_fields, check_invariants
from src.core.paths import ObjectLayout


class TestCheckDerivedFields:
    """불변식 1, 2."""

    @pytest.mark.asyncio
    async def test_sound_record(self, registered):
        assert check_derived_fields(registered, ObjectLayout()) == []

    @pytest.mark.asyncio
    async def test_stale_name(self, registered):
        broken = replace(registered, template_type="Letter")

        violations = check_derived_fields(broken, ObjectLayout())

        assert any("derived_name" in v for v in violations)

    @pytest.mark.asyncio
    async def test_stale_location(self, registered):
        broken = replace(registered, content_location="templates/elsewhere.html")

        violations = check_derived_fields(broken, ObjectLayout())

        assert len(violations) == 1
        assert "content_location" in violations[0]


class TestCheckInvariants:
    """불변식 1~4."""

    @pytest.mark.asyncio
    async def test_sound_record_with_checksum(self, registered, blob_store, template_content):
        violations = await check_invariants(
            registered,
            blob_store,
            ObjectLayout(),
            expected_checksum=compute_bytes_hash(template_content),
        )

        assert violations == []

    @pytest.mark.asyncio
    async def test_missing_object(self, registered, blob_store):
        await blob_store.delete(registered.content_location)

        violations = await check_invariants(registered, blob_store, ObjectLayout())

        assert any("no object" in v for v in violations)

    @pytest.mark.asyncio
    async def test_checksum_mismatch(self, registered, blob_store):
        violations = await check_invariants(
            registered, blob_store, ObjectLayout(), expected_checksum="sha256:other"
        )

        assert any("checksum" in v for v in violations)

    @pytest.mark.asyncio
    async def test_object_left_at_previous_location(self, registered, blob_store):
        previous = "templates/COMMERCIAL/approved/OLD.html"
        await blob_store.put(previous, b"stale")

        violations = await check_invariants(
            registered,
            blob_store,
            ObjectLayout(),
            previous_locations=[previous, registered.content_location],
        )

        assert violations == [f"object still present at previous location {previous!r}"]
