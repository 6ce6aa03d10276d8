"""
Bracket seeding.

Builds the seed document for a main or plate bracket: which slots get BYEs and how
the remaining slots pair up in round 1. The stored document, not the pool results,
is what bracket generation reads.

Main bracket order: pool winners by pool label, then runners-up (and any wildcards)
by rank and pool label. Top seeds take the BYEs. Remaining seeds pair off:
- winners only (K=1): first with last
- winners and runners-up (K=2): mirror pool first, then any other pool, then
  leftover winners together, then leftover runners-up together
Plate seeds order by rank then pool label and fold first with last.
A single swap pass then tries to break up any same-pool round-1 pair.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlmodel import Session

from poolplay.errors import ConsistencyError
from poolplay.models.bracket_seeds import BracketSeeds
from poolplay.services.canonical_ids import IdFactory, canonical_id, seeds_doc_id
from poolplay.services.pool_schedule import pool_label_sort_key
from poolplay.services.qualifiers import SeededEntry
from poolplay.utils.clock import utcnow

logger = logging.getLogger(__name__)

BRACKET_MAIN = "main"
BRACKET_PLATE = "plate"
BRACKET_TYPES = (BRACKET_MAIN, BRACKET_PLATE)

SEEDING_METHOD = "mirror"


@dataclass
class SeedSlot:
    slot_key: str
    team_id: int
    name: str
    pool_key: str
    pool_name: str
    pool_label: str
    rank: int
    player_ids: List[str] = field(default_factory=list)
    wins: int = 0
    losses: int = 0
    points_for: int = 0
    points_against: int = 0
    point_diff: int = 0

    @classmethod
    def from_entry(cls, entry: SeededEntry, player_ids: Optional[List[str]] = None) -> "SeedSlot":
        row = entry.row
        return cls(
            slot_key=entry.slot_key,
            team_id=row.team_id,
            name=row.name,
            pool_key=entry.pool_key,
            pool_name=entry.pool_name,
            pool_label=entry.pool_label,
            rank=row.rank,
            player_ids=list(player_ids or []),
            wins=row.wins,
            losses=row.losses,
            points_for=row.points_for,
            points_against=row.points_against,
            point_diff=row.point_diff,
        )


@dataclass
class Round1Pair:
    match_number: int
    side_a: str
    side_b: Optional[str] = None  # None = BYE

    @property
    def is_bye(self) -> bool:
        return self.side_b is None


@dataclass
class SeedDocument:
    bracket_type: str
    qualifiers_per_pool: int
    pool_count: int
    bracket_size: int
    rounds: int
    round1_match_count: int
    slots: Dict[str, SeedSlot] = field(default_factory=dict)
    round1_pairs: List[Round1Pair] = field(default_factory=list)
    third_place_match: bool = False
    method: str = SEEDING_METHOD

    @property
    def slot_count(self) -> int:
        return len(self.slots)

    @property
    def bye_count(self) -> int:
        return self.bracket_size - self.slot_count if self.bracket_size else 0

    @property
    def is_empty(self) -> bool:
        return self.bracket_size == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bracket_type": self.bracket_type,
            "qualifiers_per_pool": self.qualifiers_per_pool,
            "pool_count": self.pool_count,
            "method": self.method,
            "bracket_size": self.bracket_size,
            "rounds": self.rounds,
            "round1_match_count": self.round1_match_count,
            "bye_count": self.bye_count,
            "third_place_match": self.third_place_match,
            "slots": {k: asdict(v) for k, v in self.slots.items()},
            "round1_pairs": [asdict(p) for p in self.round1_pairs],
        }


def next_pow2(n: int) -> int:
    """Smallest power of two >= n; a bracket always has at least 2 positions."""
    size = 2
    while size < n:
        size *= 2
    return size


def _label_key(slot: SeedSlot):
    return pool_label_sort_key(slot.pool_label)


def _fold(keys: List[str]) -> List[List[str]]:
    """Pair first with last, repeatedly."""
    pairs = []
    queue = list(keys)
    while len(queue) >= 2:
        pairs.append([queue.pop(0), queue.pop()])
    return pairs


def _mirror_map(labels: Sequence[str]) -> Dict[str, str]:
    ordered = sorted(set(labels), key=pool_label_sort_key)
    mirror = {}
    for i in range(len(ordered) // 2):
        left, right = ordered[i], ordered[-1 - i]
        mirror[left] = right
        mirror[right] = left
    # Middle pool of an odd count has no mirror
    return mirror


def _pair_winners_and_runners_up(
    winners: List[str], others: List[str], slots: Dict[str, SeedSlot], pool_labels: Sequence[str]
) -> List[List[str]]:
    mirror = _mirror_map(pool_labels)
    avail_1 = list(winners)
    avail_2 = list(others)
    pairs: List[List[str]] = []

    # Pass 1: winner vs mirror pool's runner-up
    for key in list(avail_1):
        partner_label = mirror.get(slots[key].pool_label)
        if partner_label is None:
            continue
        partner = next((k for k in avail_2 if slots[k].pool_label == partner_label), None)
        if partner is not None:
            pairs.append([key, partner])
            avail_1.remove(key)
            avail_2.remove(partner)

    # Pass 2: winner vs any runner-up, other pool preferred
    for key in list(avail_1):
        if not avail_2:
            break
        label = slots[key].pool_label
        partner = next((k for k in avail_2 if slots[k].pool_label != label), avail_2[0])
        pairs.append([key, partner])
        avail_1.remove(key)
        avail_2.remove(partner)

    # Pass 3 and 4: leftovers among themselves
    pairs.extend(_fold(avail_1))
    pairs.extend(_fold(avail_2))
    return pairs


def avoid_same_pool_pairs(pairs: List[List[str]], slots: Dict[str, SeedSlot]) -> int:
    """
    Single best-effort pass: for each same-pool pair, swap side B with the first later
    pair where neither result is same-pool. Returns the number of swaps made.
    """
    swaps = 0
    for i, pair in enumerate(pairs):
        a_label = slots[pair[0]].pool_label
        if a_label != slots[pair[1]].pool_label:
            continue
        for other in pairs[i + 1 :]:
            if a_label != slots[other[1]].pool_label and slots[other[0]].pool_label != slots[pair[1]].pool_label:
                pair[1], other[1] = other[1], pair[1]
                swaps += 1
                logger.debug("Swapped to avoid same-pool: %s vs %s, %s vs %s", pair[0], pair[1], other[0], other[1])
                break
    return swaps


def same_pool_pairs(doc: SeedDocument) -> List[Round1Pair]:
    return [
        p
        for p in doc.round1_pairs
        if p.side_b is not None and doc.slots[p.side_a].pool_label == doc.slots[p.side_b].pool_label
    ]


def _assemble(
    bracket_type: str,
    qualifiers_per_pool: int,
    pool_count: int,
    slots: Dict[str, SeedSlot],
    seed_priority: List[str],
    pairs_builder,
    third_place_match: bool,
) -> SeedDocument:
    slot_count = len(slots)
    bracket_size = next_pow2(slot_count)
    bye_count = bracket_size - slot_count
    bye_recipients = seed_priority[:bye_count]
    remaining = seed_priority[bye_count:]

    if len(remaining) % 2 != 0:
        raise ConsistencyError(
            f"Cannot pair remaining seeds: {len(remaining)} is odd. Expected even number after removing "
            f"{len(bye_recipients)} BYE recipients from {slot_count} slots (bracket size {bracket_size}).",
            {"slot_count": slot_count, "bracket_size": bracket_size, "bye_count": bye_count, "remaining": remaining},
        )

    pairs = pairs_builder(remaining)
    paired = [k for pair in pairs for k in pair]
    if sorted(paired) != sorted(remaining):
        raise ConsistencyError(
            "Round-1 pairing did not use every remaining seed exactly once",
            {"remaining": remaining, "paired": paired},
        )
    swaps = avoid_same_pool_pairs(pairs, slots)

    round1 = [Round1Pair(match_number=i + 1, side_a=key) for i, key in enumerate(bye_recipients)]
    round1.extend(
        Round1Pair(match_number=len(bye_recipients) + i + 1, side_a=a, side_b=b) for i, (a, b) in enumerate(pairs)
    )

    doc = SeedDocument(
        bracket_type=bracket_type,
        qualifiers_per_pool=qualifiers_per_pool,
        pool_count=pool_count,
        bracket_size=bracket_size,
        rounds=bracket_size.bit_length() - 1,
        round1_match_count=len(round1),
        slots=slots,
        round1_pairs=round1,
        third_place_match=third_place_match,
    )
    validate_seed_document(doc)
    logger.info(
        "Built %s seeds: %d slots, bracket %d, %d BYEs, %d real round-1 matches, %d same-pool swap(s)",
        bracket_type,
        slot_count,
        bracket_size,
        bye_count,
        len(pairs),
        swaps,
    )
    unavoidable = same_pool_pairs(doc)
    if unavoidable:
        logger.warning(
            "%s seeds keep %d same-pool round-1 match(es): %s",
            bracket_type,
            len(unavoidable),
            ", ".join(f"{p.side_a} vs {p.side_b}" for p in unavoidable),
        )
    return doc


def _slots_from_entries(entries: Sequence[SeededEntry], player_ids: Optional[Dict[int, List[str]]]) -> Dict[str, SeedSlot]:
    slots: Dict[str, SeedSlot] = {}
    for entry in entries:
        slot = SeedSlot.from_entry(entry, (player_ids or {}).get(entry.row.team_id))
        if slot.slot_key in slots:
            raise ConsistencyError(f"Duplicate seed slot key {slot.slot_key}", {"slot_key": slot.slot_key})
        slots[slot.slot_key] = slot
    return slots


def build_main_seed_document(
    entries: Sequence[SeededEntry],
    qualifiers_per_pool: int,
    pool_count: int,
    third_place_match: bool = False,
    player_ids: Optional[Dict[int, List[str]]] = None,
) -> SeedDocument:
    slots = _slots_from_entries(entries, player_ids)
    if not slots:
        raise ConsistencyError("Main bracket has no qualifier slots", {"pool_count": pool_count})

    winners = sorted((s for s in slots.values() if s.rank == 1), key=_label_key)
    others = sorted((s for s in slots.values() if s.rank != 1), key=lambda s: (s.rank, _label_key(s)))
    seed_priority = [s.slot_key for s in winners] + [s.slot_key for s in others]
    pool_labels = [s.pool_label for s in slots.values()]

    def pairs_builder(remaining: List[str]) -> List[List[str]]:
        rem_1 = [k for k in remaining if slots[k].rank == 1]
        rem_2 = [k for k in remaining if slots[k].rank != 1]
        if not rem_2:
            return _fold(rem_1)
        return _pair_winners_and_runners_up(rem_1, rem_2, slots, pool_labels)

    return _assemble(
        BRACKET_MAIN, qualifiers_per_pool, pool_count, slots, seed_priority, pairs_builder, third_place_match
    )


def build_plate_seed_document(
    entries: Sequence[SeededEntry],
    qualifiers_per_pool: int,
    pool_count: int,
    third_place_match: bool = False,
    player_ids: Optional[Dict[int, List[str]]] = None,
) -> SeedDocument:
    """Fewer than 2 eligible teams gives an empty, zero-size document."""
    slots = _slots_from_entries(entries, player_ids)
    if len(slots) < 2:
        logger.info("Plate bracket skipped: %d eligible team(s)", len(slots))
        return SeedDocument(
            bracket_type=BRACKET_PLATE,
            qualifiers_per_pool=qualifiers_per_pool,
            pool_count=pool_count,
            bracket_size=0,
            rounds=0,
            round1_match_count=0,
            slots={},
            round1_pairs=[],
            third_place_match=third_place_match,
        )
    seed_priority = [s.slot_key for s in sorted(slots.values(), key=lambda s: (s.rank, _label_key(s)))]
    return _assemble(
        BRACKET_PLATE, qualifiers_per_pool, pool_count, slots, seed_priority, _fold, third_place_match
    )


def validate_seed_document(doc: SeedDocument) -> None:
    if doc.is_empty:
        if doc.round1_pairs or doc.slots:
            raise ConsistencyError(
                "Zero-size seed document carries pairs or slots",
                {"slots": list(doc.slots), "pairs": len(doc.round1_pairs)},
            )
        return

    expected_size = next_pow2(doc.slot_count)
    if doc.bracket_size != expected_size:
        raise ConsistencyError(
            f"Bracket size {doc.bracket_size} does not fit {doc.slot_count} slots (expected {expected_size})",
            {"bracket_size": doc.bracket_size, "slot_count": doc.slot_count},
        )
    if len(doc.round1_pairs) != doc.bracket_size // 2:
        byes = sum(1 for p in doc.round1_pairs if p.is_bye)
        raise ConsistencyError(
            f"Round-1 match count mismatch: got {len(doc.round1_pairs)}, expected {doc.bracket_size // 2} "
            f"(bracket size {doc.bracket_size}, {byes} BYE matches, {len(doc.round1_pairs) - byes} real matches)",
            {"round1_pairs": len(doc.round1_pairs), "bracket_size": doc.bracket_size, "bye_matches": byes},
        )
    missing = [
        key
        for p in doc.round1_pairs
        for key in (p.side_a, p.side_b)
        if key is not None and key not in doc.slots
    ]
    if missing:
        raise ConsistencyError(f"Round-1 pairs reference missing slots: {missing}", {"missing": missing})


# ============================================================================
# Persistence
# ============================================================================


def save_seed_document(
    session: Session,
    division_id: int,
    doc: SeedDocument,
    generated_at: Optional[datetime] = None,
    id_factory: IdFactory = canonical_id,
) -> BracketSeeds:
    """Upsert the stored document for (division, bracket type). Caller commits."""
    data = doc.to_dict()
    doc_id = seeds_doc_id(division_id, doc.bracket_type, id_factory)
    fields = {
        "division_id": division_id,
        "bracket_type": doc.bracket_type,
        "qualifiers_per_pool": doc.qualifiers_per_pool,
        "pool_count": doc.pool_count,
        "method": doc.method,
        "bracket_size": doc.bracket_size,
        "rounds": doc.rounds,
        "round1_match_count": doc.round1_match_count,
        "third_place_match": doc.third_place_match,
        "slots": data["slots"],
        "round1_pairs": data["round1_pairs"],
        "generated_at": generated_at or utcnow(),
    }
    row = session.get(BracketSeeds, doc_id)
    if row is None:
        row = BracketSeeds(id=doc_id, **fields)
    else:
        row.sqlmodel_update(fields)
    session.add(row)
    return row


def seed_document_from_row(row: BracketSeeds) -> SeedDocument:
    return SeedDocument(
        bracket_type=row.bracket_type,
        qualifiers_per_pool=row.qualifiers_per_pool,
        pool_count=row.pool_count,
        bracket_size=row.bracket_size,
        rounds=row.rounds,
        round1_match_count=row.round1_match_count,
        slots={k: SeedSlot(**v) for k, v in (row.slots or {}).items()},
        round1_pairs=[Round1Pair(**p) for p in (row.round1_pairs or [])],
        third_place_match=row.third_place_match,
        method=row.method,
    )


def load_seed_document(
    session: Session, division_id: int, bracket_type: str, id_factory: IdFactory = canonical_id
) -> Optional[SeedDocument]:
    row = session.get(BracketSeeds, seeds_doc_id(division_id, bracket_type, id_factory))
    return seed_document_from_row(row) if row else None
