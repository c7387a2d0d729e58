"""
Duplicate variant detection.
Variants sharing a UPC are duplicates; the most recently written one survives.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Set

import structlog

from catalog_sync.integrations.square.models import CatalogVariant

logger = structlog.get_logger()


@dataclass(frozen=True)
class DuplicateGroup:
    """Variants sharing one UPC, ordered by (version, id) ascending."""

    upc: str
    members: tuple[CatalogVariant, ...]

    @property
    def survivor(self) -> CatalogVariant:
        return self.members[-1]

    @property
    def to_delete(self) -> List[str]:
        return [variant.id for variant in self.members[:-1]]


def group_duplicates(variants: Iterable[CatalogVariant]) -> List[DuplicateGroup]:
    """
    Group variants by UPC, keeping only groups with more than one member.

    Variants without a UPC and deleted tombstones are skipped. Members are sorted by version and then
    by id, so when two variants share a version the lexicographically greatest
    id is the survivor.
    """
    by_upc: Dict[str, List[CatalogVariant]] = defaultdict(list)
    for variant in variants:
        if variant.upc and not variant.is_deleted:
            by_upc[variant.upc].append(variant)

    groups = []
    for upc in sorted(by_upc):
        members = by_upc[upc]
        if len(members) < 2:
            continue
        ordered = sorted(members, key=lambda v: (v.version, v.id))
        groups.append(DuplicateGroup(upc=upc, members=tuple(ordered)))
    return groups


def resolve(variants: Iterable[CatalogVariant]) -> Set[str]:
    """Return the ids of every duplicate variant that is not its group's survivor."""
    groups = group_duplicates(variants)
    survivors = {group.survivor.id for group in groups}
    to_delete = {variant_id for group in groups for variant_id in group.to_delete}
    # An id listed twice in the scan may be a survivor in one group and not another
    to_delete -= survivors

    logger.info("Resolved duplicate variants", groups=len(groups), to_delete=len(to_delete))
    return to_delete
