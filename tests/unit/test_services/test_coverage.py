"""Tests for coverage matching."""

import pytest

from leadroute.models.realtor import Realtor
from leadroute.services.coverage import ZipListCoverageMatcher, has_coverage, matching_realtors


def realtor(agent_code: str, zip_codes=(), central_zip_code=None, radius=0, is_active=True) -> Realtor:
    return Realtor(
        realtor_id=f"R-{agent_code}",
        agent_code=agent_code,
        first_name="Test",
        last_name=agent_code,
        email=f"{agent_code.lower()}@example.com",
        zip_codes=list(zip_codes),
        central_zip_code=central_zip_code,
        radius=radius,
        is_active=is_active,
    )


@pytest.mark.unit
def test_zip_in_explicit_list_is_covered():
    matcher = ZipListCoverageMatcher()

    assert matcher.covers(realtor("A1", zip_codes=["10001", "10002"]), "10002")
    assert not matcher.covers(realtor("A1", zip_codes=["10001"]), "10003")


@pytest.mark.unit
def test_central_zip_needs_positive_radius():
    matcher = ZipListCoverageMatcher()

    assert matcher.covers(realtor("A1", central_zip_code="60601", radius=10), "60601")
    assert not matcher.covers(realtor("A1", central_zip_code="60601", radius=0), "60601")


@pytest.mark.unit
def test_radius_never_widens_past_central_zip():
    matcher = ZipListCoverageMatcher()
    wide = realtor("A1", central_zip_code="60601", radius=500)

    assert not matcher.covers(wide, "60602")
    assert matcher.covered_zip_codes(wide) == {"60601"}


@pytest.mark.unit
def test_zip_comparison_strips_whitespace():
    matcher = ZipListCoverageMatcher()

    assert matcher.covers(realtor("A1", zip_codes=["10001"]), " 10001 ")
    assert not matcher.covers(realtor("A1", zip_codes=["10001"]), "   ")


@pytest.mark.unit
def test_matching_realtors_ignores_inactive():
    active = realtor("A1", zip_codes=["10001"])
    inactive = realtor("B2", zip_codes=["10001"], is_active=False)

    matches = matching_realtors("10001", [active, inactive])

    assert [r.agent_code for r in matches] == ["A1"]


@pytest.mark.unit
def test_matching_realtors_empty_means_no_coverage():
    realtors = [realtor("A1", zip_codes=["10001"]), realtor("B2", zip_codes=["10001"], is_active=False)]

    assert matching_realtors("99999", realtors) == []
    assert has_coverage("99999", realtors) is False
    assert has_coverage("10001", realtors) is True


@pytest.mark.unit
def test_custom_matcher_is_used():
    class EverywhereMatcher:
        def covers(self, realtor, zip_code):
            return True

        def covered_zip_codes(self, realtor):
            return set()

    assert has_coverage("99999", [realtor("A1")], matcher=EverywhereMatcher())
