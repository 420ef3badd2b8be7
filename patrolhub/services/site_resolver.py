"""
Site reference resolution.

QR codes, old sheets and supervisors refer to a site by its legacy id, its
code, a code embedded in the English name, or a fragment of the name.
`resolve` maps any of these to the canonical site code.
"""
import re
from typing import Callable, Iterable, List, Optional, Sequence

from ..schemas.sites import Site

VKS_CODE = re.compile(r"VKS\d+-\d+", re.IGNORECASE)

Strategy = Callable[[str, Sequence[Site]], Optional[Site]]


def match_id_or_code(reference: str, sites: Sequence[Site]) -> Optional[Site]:
    ref = reference.lower()
    for site in sites:
        if (site.id or "").lower() == ref or (site.code or "").lower() == ref:
            return site
    return None


def match_embedded_code(reference: str, sites: Sequence[Site]) -> Optional[Site]:
    found = VKS_CODE.search(reference)
    if not found:
        return None
    token = found.group(0).lower()
    for site in sites:
        if token in (site.name_en or "").lower():
            return site
    return None


def match_name_contains(reference: str, sites: Sequence[Site]) -> Optional[Site]:
    ref = reference.lower()
    for site in sites:
        if site.name_en and ref in site.name_en.lower():
            return site
    return None


STRATEGIES: List[Strategy] = [match_id_or_code, match_embedded_code, match_name_contains]


def resolve_site(reference: Optional[str], sites: Iterable[Site]) -> Optional[Site]:
    ref = (reference or "").strip()
    if not ref:
        return None
    active = [s for s in sites if s.is_active]
    for strategy in STRATEGIES:
        site = strategy(ref, active)
        if site is not None:
            return site
    return None


def resolve(reference: Optional[str], sites: Iterable[Site]) -> str:
    """
    Map a raw site reference to a canonical site code.

    Args:
        reference: Raw id, code, name fragment, or name-embedded code
        sites: Site directory

    Returns:
        The canonical code of the first matching active site, or the
        reference unchanged when nothing matches
    """
    site = resolve_site(reference, sites)
    if site is None or not site.canonical_code:
        return reference or ""
    return site.canonical_code
