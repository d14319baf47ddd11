"""
Cross-wave Identity Resolution

Each wave assigns pseudonymous ids from its own disjoint range. An
external mapping table links a subject's wave-2 id to their wave-3 and
wave-4 ids, with partial rows anchored at a wave-3 id when the subject
skipped wave 2. Resolution merges linked ids into one identity class whose
canonical id is the wave-2 id when present, else the earliest-wave id.

Resolution runs in a fixed order:
1. Clear mapping cells that reference ids absent from the observed data
2. Wave-2 anchors: union each wave-2 id with its wave-3 and wave-4 links
3. Wave-3 anchors: for wave-3 ids not claimed in step 2, union the wave-4
   link of rows that have no wave-2 link
4. Every other id is its own class

A later rule never overrides a class established by an earlier one. Links
that would join two independently anchored classes, or put two ids of the
same wave in one class, raise IdentityContradiction.
"""

from collections import defaultdict
from collections.abc import Mapping
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

import pandas as pd
from loguru import logger

from ..config import WaveRange
from ..errors import IdentityContradiction

ANCHOR_WAVE = 2
SECONDARY_WAVE = 3
TERTIARY_WAVE = 4

WAVE_COLUMNS = {
    ANCHOR_WAVE: "wave2_id",
    SECONDARY_WAVE: "wave3_id",
    TERTIARY_WAVE: "wave4_id",
}


class WaveRanges:
    """Lookup from a pseudonymous id to the wave whose range contains it."""

    def __init__(self, ranges: Sequence[WaveRange]):
        self.ranges = sorted(ranges, key=lambda r: r.first_id)
        for prev, cur in zip(self.ranges, self.ranges[1:]):
            if cur.first_id <= prev.last_id:
                raise ValueError(f"Wave id ranges overlap: wave {prev.wave} and wave {cur.wave}")

    def wave_of(self, subject_id: int) -> int:
        for r in self.ranges:
            if r.contains(subject_id):
                return r.wave
        raise ValueError(f"Id {subject_id} lies in no configured wave range")

    def in_wave(self, subject_id: int, wave: int) -> bool:
        return any(r.wave == wave and r.contains(subject_id) for r in self.ranges)


class DisjointSet:
    """
    Union-find over pseudonymous ids.

    Each root carries the class's canonical id, whether a resolution rule
    has anchored it, and its member id per wave.
    """

    def __init__(self):
        self.parent: Dict[int, int] = {}
        self.size: Dict[int, int] = {}
        self.canonical: Dict[int, int] = {}
        self.anchored: Dict[int, bool] = {}
        self.by_wave: Dict[int, Dict[int, int]] = {}

    def add(self, x: int, wave: int) -> None:
        if x in self.parent:
            return
        self.parent[x] = x
        self.size[x] = 1
        self.canonical[x] = x
        self.anchored[x] = False
        self.by_wave[x] = {wave: x}

    def find(self, x: int) -> int:
        root = x
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[x] != root:
            self.parent[x], x = root, self.parent[x]
        return root

    def canonical_of(self, x: int) -> int:
        return self.canonical[self.find(x)]

    def is_anchored(self, x: int) -> bool:
        return self.anchored[self.find(x)]

    def anchor(self, x: int) -> None:
        """Mark x's class as established, with x as its canonical id."""
        root = self.find(x)
        if self.anchored[root] and self.canonical[root] != x:
            raise IdentityContradiction(
                (x, self.canonical[root]), "id already belongs to another anchored class"
            )
        self.anchored[root] = True
        self.canonical[root] = x

    def union(self, anchor_id: int, other: int) -> int:
        """Merge other's class into the anchored class of anchor_id."""
        ra, rb = self.find(anchor_id), self.find(other)
        if ra == rb:
            return ra
        if self.anchored[rb]:
            raise IdentityContradiction(
                (self.canonical[ra], self.canonical[rb], other),
                f"id {other} is linked to {self.canonical[ra]} but already "
                f"resolved to {self.canonical[rb]}",
            )
        for wave, member in self.by_wave[rb].items():
            existing = self.by_wave[ra].get(wave)
            if existing is not None and existing != member:
                raise IdentityContradiction(
                    (self.canonical[ra], existing, member),
                    f"two wave-{wave} ids linked to the same subject",
                )

        canonical = self.canonical[ra]
        merged = {**self.by_wave[rb], **self.by_wave[ra]}
        if self.size[ra] < self.size[rb]:
            ra, rb = rb, ra
        self.parent[rb] = ra
        self.size[ra] += self.size[rb]
        self.canonical[ra] = canonical
        self.anchored[ra] = True
        self.by_wave[ra] = merged
        return ra


class IdentityMap(Mapping):
    """
    Frozen map from observed pseudonymous id to canonical subject id.

    Total and onto the observed id set; unknown ids raise KeyError.
    """

    def __init__(self, canonical: Dict[int, int]):
        self._canonical = MappingProxyType(dict(canonical))

    def __getitem__(self, subject_id: int) -> int:
        return self._canonical[subject_id]

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._canonical))

    def __len__(self) -> int:
        return len(self._canonical)

    def canonical(self, subject_id: int) -> int:
        return self[subject_id]

    @property
    def canonical_ids(self) -> Set[int]:
        return set(self._canonical.values())

    def classes(self) -> Dict[int, Tuple[int, ...]]:
        """Canonical id -> sorted member ids."""
        members = defaultdict(list)
        for subject_id in sorted(self._canonical):
            members[self._canonical[subject_id]].append(subject_id)
        return {c: tuple(ids) for c, ids in sorted(members.items())}

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {"subject_id": list(self), "canonical_id": [self[i] for i in self]},
            dtype="int64",
        )


def _cell(value) -> Optional[int]:
    return None if pd.isna(value) else int(value)


class IdentityResolver:
    """Builds an IdentityMap from observed ids and the external mapping."""

    def __init__(self, wave_ranges: Sequence[WaveRange]):
        self.waves = WaveRanges(wave_ranges)

    def restrict_mapping(self, mapping: pd.DataFrame, observed: Set[int]) -> List[Dict[int, int]]:
        """
        Keep only mapping cells naming observed ids of the column's wave.

        Returns:
            One {wave: id} dict per mapping row with at least one id left
        """
        rows = []
        n_unobserved = 0
        for record in mapping.itertuples(index=False):
            row = {}
            for wave, col in WAVE_COLUMNS.items():
                value = _cell(getattr(record, col))
                if value is None:
                    continue
                if not self.waves.in_wave(value, wave):
                    logger.warning(f"Mapping {col}={value} is outside the wave-{wave} range; ignored")
                    continue
                if value not in observed:
                    n_unobserved += 1
                    continue
                row[wave] = value
            if row:
                rows.append(row)
        if n_unobserved:
            logger.info(f"Ignored {n_unobserved} mapping cells referencing unobserved ids")
        return rows

    def resolve(self, observed_ids: Iterable[int], mapping: pd.DataFrame) -> IdentityMap:
        """
        Resolve every observed id to its canonical subject id.

        Args:
            observed_ids: Pseudonymous ids present in survey or usage data
            mapping: wave2_id, wave3_id, wave4_id (nullable)

        Returns:
            IdentityMap over exactly the observed ids
        """
        observed = {int(i) for i in observed_ids}
        rows = self.restrict_mapping(mapping, observed)

        dsu = DisjointSet()
        for subject_id in sorted(observed):
            dsu.add(subject_id, self.waves.wave_of(subject_id))

        by_anchor = defaultdict(set)
        by_secondary = defaultdict(set)
        for row in rows:
            if ANCHOR_WAVE in row:
                links = tuple(row.get(w) for w in (SECONDARY_WAVE, TERTIARY_WAVE))
                by_anchor[row[ANCHOR_WAVE]].add(links)
            elif SECONDARY_WAVE in row and TERTIARY_WAVE in row:
                by_secondary[row[SECONDARY_WAVE]].add(row[TERTIARY_WAVE])

        def ids_in_wave(wave: int) -> List[int]:
            return sorted(i for i in observed if self.waves.wave_of(i) == wave)

        for anchor_id in ids_in_wave(ANCHOR_WAVE):
            if anchor_id not in by_anchor:
                continue
            dsu.anchor(anchor_id)
            for links in sorted(by_anchor[anchor_id], key=str):
                for linked in links:
                    if linked is not None:
                        dsu.union(anchor_id, linked)

        for secondary_id in ids_in_wave(SECONDARY_WAVE):
            if secondary_id not in by_secondary:
                continue
            if dsu.is_anchored(secondary_id):
                self._check_skipped_links(dsu, secondary_id, by_secondary[secondary_id])
                continue
            dsu.anchor(secondary_id)
            for linked in sorted(by_secondary[secondary_id]):
                dsu.union(secondary_id, linked)

        identity = IdentityMap({i: dsu.canonical_of(i) for i in observed})
        n_merged = sum(1 for members in identity.classes().values() if len(members) > 1)
        logger.info(
            f"Resolved {len(identity)} pseudonymous ids into "
            f"{len(identity.canonical_ids)} subjects ({n_merged} multi-wave)"
        )
        return identity

    @staticmethod
    def _check_skipped_links(dsu: DisjointSet, secondary_id: int, linked_ids: Set[int]) -> None:
        """A wave-3 id already claimed by a wave-2 class keeps that class."""
        owner = dsu.canonical_of(secondary_id)
        for linked in sorted(linked_ids):
            if dsu.find(linked) == dsu.find(secondary_id):
                continue
            if dsu.is_anchored(linked):
                raise IdentityContradiction(
                    (owner, secondary_id, linked),
                    f"wave-3 id {secondary_id} belongs to {owner} but is linked to "
                    f"{linked}, which resolved to {dsu.canonical_of(linked)}",
                )
            logger.warning(
                f"Link {secondary_id} -> {linked} ignored: {secondary_id} already "
                f"resolved to {owner}"
            )
