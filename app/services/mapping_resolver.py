"""Finding the records on other platforms that represent the same product."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.core.enums import MappingMethod, PlatformName

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductSnapshot:
    platform: PlatformName
    product_ref: str
    variant_ref: Optional[str] = None
    title: Optional[str] = None
    sku: Optional[str] = None

    @classmethod
    def from_record(cls, record: Any) -> "ProductSnapshot":
        return cls(
            platform=PlatformName(record.platform),
            product_ref=record.product_ref,
            variant_ref=record.variant_ref,
            title=record.title,
            sku=record.sku,
        )


@dataclass(frozen=True)
class MappingLink:
    platform_a: PlatformName
    ref_a: str
    platform_b: PlatformName
    ref_b: str
    variant_a: Optional[str] = None
    variant_b: Optional[str] = None

    @classmethod
    def from_record(cls, record: Any) -> "MappingLink":
        return cls(
            platform_a=PlatformName(record.platform_a),
            ref_a=record.ref_a,
            platform_b=PlatformName(record.platform_b),
            ref_b=record.ref_b,
            variant_a=record.variant_a,
            variant_b=record.variant_b,
        )


@dataclass(frozen=True)
class ResolvedMapping:
    platform: PlatformName
    product_ref: str
    variant_ref: Optional[str]
    method: MappingMethod


def _ref_key(ref: Optional[str]) -> Tuple[int, int, str]:
    """Numeric refs sort numerically and before non-numeric ones; None sorts first."""
    if ref is None:
        return (-1, 0, "")
    if ref.isdigit():
        return (0, int(ref), ref)
    return (1, 0, ref)


def _candidate_key(candidate: ProductSnapshot) -> Tuple:
    return (_ref_key(candidate.product_ref), _ref_key(candidate.variant_ref))


def _explicit_matches(
    source: ProductSnapshot, links: Iterable[MappingLink], target: PlatformName
) -> List[ProductSnapshot]:
    matches = []
    for link in links:
        if (
            link.platform_a == source.platform
            and link.ref_a == source.product_ref
            and (link.variant_a is None or link.variant_a == source.variant_ref)
            and link.platform_b == target
        ):
            matches.append(ProductSnapshot(target, link.ref_b, link.variant_b))
        elif (
            link.platform_b == source.platform
            and link.ref_b == source.product_ref
            and (link.variant_b is None or link.variant_b == source.variant_ref)
            and link.platform_a == target
        ):
            matches.append(ProductSnapshot(target, link.ref_a, link.variant_a))
    return matches


def resolve_siblings(
    source: ProductSnapshot,
    explicit: Sequence[MappingLink],
    candidates: Sequence[ProductSnapshot],
    targets: Sequence[PlatformName],
) -> List[ResolvedMapping]:
    """
    For each target platform pick at most one sibling of `source`:
    an explicit mapping, else an exact SKU match, else an exact title match.
    Both comparisons are case-sensitive and an empty SKU or title never matches.

    Ties go to the lowest product ref, then the lowest variant ref, so the
    same inputs always give the same answer. Results follow PlatformName order
    and unmatched targets are left out.
    """
    resolved: List[ResolvedMapping] = []
    wanted = set(targets)

    for target in PlatformName.ordered():
        if target not in wanted or target == source.platform:
            continue

        matches = _explicit_matches(source, explicit, target)
        method = MappingMethod.EXPLICIT

        if not matches and source.sku:
            matches = [c for c in candidates if c.platform == target and c.sku == source.sku]
            method = MappingMethod.SKU

        if not matches and source.title:
            matches = [c for c in candidates if c.platform == target and c.title == source.title]
            method = MappingMethod.NAME

        if not matches:
            continue

        best = min(matches, key=_candidate_key)
        resolved.append(ResolvedMapping(target, best.product_ref, best.variant_ref, method))

    return resolved


class MappingResolver:
    """
    Loads a snapshot of a merchant's catalog and explicit mappings and runs
    `resolve_siblings` over it. Explicit mappings are cached per merchant for
    `cache_ttl` seconds; product records are always read fresh.
    """

    def __init__(self, store, cache_ttl: float = 300.0):
        self.store = store
        self.cache_ttl = cache_ttl
        self._cache: Dict[str, Tuple[float, List[MappingLink]]] = {}

    async def _explicit_links(self, merchant_id: str) -> List[MappingLink]:
        cached = self._cache.get(merchant_id)
        now = time.monotonic()
        if cached and now - cached[0] < self.cache_ttl:
            return cached[1]
        records = await self.store.get_explicit_mappings(merchant_id)
        links = [MappingLink.from_record(r) for r in records]
        self._cache[merchant_id] = (now, links)
        return links

    def invalidate(self, merchant_id: Optional[str] = None) -> None:
        if merchant_id is None:
            self._cache.clear()
        else:
            self._cache.pop(merchant_id, None)

    async def resolve(
        self,
        merchant_id: str,
        platform: PlatformName,
        product_ref: str,
        variant_ref: Optional[str],
        target_platforms: Iterable[PlatformName],
    ) -> List[ResolvedMapping]:
        targets = [p for p in target_platforms if p != platform]
        if not targets:
            return []

        explicit = await self._explicit_links(merchant_id)
        record = await self.store.get_product(merchant_id, platform, product_ref, variant_ref)
        if record is not None:
            source = ProductSnapshot.from_record(record)
            # Keep the variant asked about even if the record is a sibling variant row
            source = ProductSnapshot(platform, product_ref, variant_ref, source.title, source.sku)
        else:
            source = ProductSnapshot(platform, product_ref, variant_ref)

        candidates = [
            ProductSnapshot.from_record(r)
            for r in await self.store.list_products(merchant_id, targets)
        ]
        resolved = resolve_siblings(source, explicit, candidates, targets)
        logger.debug(
            f"Resolved {len(resolved)} sibling(s) for {platform.value}:{product_ref} "
            f"({', '.join(f'{r.platform.value}:{r.product_ref} via {r.method.value}' for r in resolved) or 'none'})"
        )
        return resolved

    async def save_mapping(
        self,
        merchant_id: str,
        platform_a: PlatformName,
        ref_a: str,
        platform_b: PlatformName,
        ref_b: str,
        variant_a: Optional[str] = None,
        variant_b: Optional[str] = None,
        created_by: Optional[str] = None,
    ):
        mapping = await self.store.save_mapping(
            merchant_id, platform_a, ref_a, platform_b, ref_b,
            variant_a=variant_a, variant_b=variant_b, created_by=created_by,
        )
        self.invalidate(merchant_id)
        return mapping
