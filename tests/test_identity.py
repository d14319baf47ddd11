from itertools import permutations

import pytest

from unlock_anxiety.config import StudyConfig, WaveRange
from unlock_anxiety.errors import IdentityContradiction
from unlock_anxiety.preprocessing.identity import (
    DisjointSet,
    IdentityMap,
    IdentityResolver,
    WaveRanges,
)


@pytest.fixture
def resolver():
    return IdentityResolver(StudyConfig().wave_ranges)


def test_wave2_link_shares_canonical_id(resolver, mapping_frame):
    identity = resolver.resolve({305, 650, 12}, mapping_frame([(305, 650, None)]))

    assert identity[305] == 305
    assert identity[650] == 305
    assert identity[12] == 12
    assert identity.classes() == {12: (12,), 305: (305, 650)}


def test_wave2_anchor_merges_all_three_waves(resolver, mapping_frame):
    identity = resolver.resolve({40, 540, 840}, mapping_frame([(40, 540, 840)]))
    assert {identity[i] for i in (40, 540, 840)} == {40}


def test_wave3_anchor_without_wave2(resolver, mapping_frame):
    identity = resolver.resolve({600, 900}, mapping_frame([(None, 600, 900)]))
    assert identity[900] == 600
    assert identity.canonical_ids == {600}


def test_unobserved_ids_are_ignored(resolver, mapping_frame):
    mapping = mapping_frame([(10, 510, 810), (11, 520, 820)])
    identity = resolver.resolve({10, 810, 520, 820}, mapping)

    assert identity[810] == 10
    # Wave-2 id 11 never observed, so 520 anchors its own class
    assert identity[820] == 520
    assert 510 not in identity
    assert 11 not in identity
    assert len(identity) == 4


def test_wave3_rule_never_overrides_wave2_class(resolver, mapping_frame):
    mapping = mapping_frame([(20, 530, None), (None, 530, 830)])
    identity = resolver.resolve({20, 530, 830}, mapping)

    assert identity[530] == 20
    assert identity[830] == 830


def test_wave3_id_claimed_by_two_wave2_ids(resolver, mapping_frame):
    mapping = mapping_frame([(20, 530, None), (21, 530, None)])
    with pytest.raises(IdentityContradiction) as exc:
        resolver.resolve({20, 21, 530}, mapping)
    assert set(exc.value.ids) >= {20, 21}


def test_wave4_id_claimed_by_wave2_and_wave3_classes(resolver, mapping_frame):
    mapping = mapping_frame([(20, None, 830), (None, 530, 830)])
    with pytest.raises(IdentityContradiction) as exc:
        resolver.resolve({20, 530, 830}, mapping)
    assert 830 in exc.value.ids


def test_two_ids_of_one_wave_in_a_class(resolver, mapping_frame):
    mapping = mapping_frame([(20, 530, None), (20, 531, None)])
    with pytest.raises(IdentityContradiction, match="two wave-3 ids"):
        resolver.resolve({20, 530, 531}, mapping)


def test_skipped_wave3_link_conflicting_with_other_class(resolver, mapping_frame):
    mapping = mapping_frame([(20, 530, None), (21, None, 830), (None, 530, 830)])
    with pytest.raises(IdentityContradiction):
        resolver.resolve({20, 21, 530, 830}, mapping)


def test_resolution_is_idempotent(resolver, mapping_frame):
    mapping = mapping_frame([(305, 650, None), (None, 600, 900), (40, 540, 840)])
    identity = resolver.resolve({305, 650, 600, 900, 40, 540, 840, 7}, mapping)

    again = resolver.resolve(identity.canonical_ids, mapping)

    assert all(again[i] == i for i in again)
    assert set(again) == identity.canonical_ids


def test_resolution_is_order_independent(resolver, mapping_frame):
    rows = [(305, 650, None), (None, 600, 900), (40, 540, 840), (41, None, 841)]
    observed = {305, 650, 600, 900, 40, 540, 840, 41, 841, 3}

    expected = resolver.resolve(observed, mapping_frame(rows)).classes()
    for perm in permutations(rows):
        assert resolver.resolve(observed, mapping_frame(list(perm))).classes() == expected


def test_mapping_cells_outside_wave_range_ignored(resolver, mapping_frame):
    # 900 is a wave-4 id sitting in the wave-3 column
    identity = resolver.resolve({30, 900}, mapping_frame([(30, 900, None)]))
    assert identity[900] == 900


def test_identity_map_is_frozen(resolver, mapping_frame):
    identity = resolver.resolve({305, 650}, mapping_frame([(305, 650, None)]))

    with pytest.raises(TypeError):
        identity._canonical[650] = 650
    with pytest.raises(KeyError):
        identity[999]
    assert identity.canonical(650) == 305


def test_identity_map_to_frame():
    frame = IdentityMap({650: 305, 305: 305}).to_frame()
    assert frame.to_dict(orient="list") == {"subject_id": [305, 650], "canonical_id": [305, 305]}


def test_observed_id_outside_all_ranges(resolver, mapping_frame):
    with pytest.raises(ValueError):
        resolver.resolve({5000}, mapping_frame([]))


def test_wave_ranges():
    waves = WaveRanges([WaveRange(3, 500, 799), WaveRange(2, 1, 499)])
    assert waves.wave_of(1) == 2
    assert waves.wave_of(799) == 3
    assert waves.in_wave(650, 3)
    assert not waves.in_wave(650, 2)
    with pytest.raises(ValueError):
        WaveRanges([WaveRange(2, 1, 500), WaveRange(3, 500, 799)])


def test_disjoint_set_union_keeps_anchor_canonical():
    dsu = DisjointSet()
    for x, wave in [(1, 2), (500, 3), (800, 4)]:
        dsu.add(x, wave)
    dsu.anchor(1)
    dsu.union(1, 500)
    dsu.union(500, 800)

    assert dsu.find(800) == dsu.find(1)
    assert dsu.canonical_of(800) == 1
    assert dsu.is_anchored(500)
