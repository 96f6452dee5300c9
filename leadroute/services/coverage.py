"""Coverage matching - which active realtors can serve a zip code."""

from typing import Iterable, Optional, Protocol

from leadroute.models.realtor import Realtor


class CoverageMatcher(Protocol):
    """Matching rule for a single realtor. Swap in a geodesic rule here."""

    def covers(self, realtor: Realtor, zip_code: str) -> bool: ...

    def covered_zip_codes(self, realtor: Realtor) -> set[str]: ...


class ZipListCoverageMatcher:
    """
    A realtor covers a zip if it is in their explicit zip list, or it is their
    central zip and their radius is positive.

    The radius never widens coverage past the central zip.
    """

    def covers(self, realtor: Realtor, zip_code: str) -> bool:
        zip_code = (zip_code or "").strip()
        if not zip_code:
            return False
        return zip_code in self.covered_zip_codes(realtor)

    def covered_zip_codes(self, realtor: Realtor) -> set[str]:
        covered = {z.strip() for z in realtor.zip_codes if z and z.strip()}
        central = (realtor.central_zip_code or "").strip()
        if central and realtor.radius > 0:
            covered.add(central)
        return covered


DEFAULT_MATCHER = ZipListCoverageMatcher()


def matching_realtors(
    zip_code: str,
    realtors: Iterable[Realtor],
    matcher: Optional[CoverageMatcher] = None,
) -> list[Realtor]:
    """Active realtors covering ``zip_code``. Empty means no coverage."""
    matcher = matcher or DEFAULT_MATCHER
    return [r for r in realtors if r.is_active and matcher.covers(r, zip_code)]


def has_coverage(
    zip_code: str,
    realtors: Iterable[Realtor],
    matcher: Optional[CoverageMatcher] = None,
) -> bool:
    """Whether any active realtor covers ``zip_code``."""
    matcher = matcher or DEFAULT_MATCHER
    return any(r.is_active and matcher.covers(r, zip_code) for r in realtors)
