"""
Bracket match generation.

Expands a seed document into the full linked match tree:
1. Plan every match with a temporary id (round 1 from the seed pairs, later rounds TBD)
2. Wire winner links (positions 2i-1, 2i feed slot A / slot B of match i) and, when
   configured, semifinal loser links into a bronze match
3. Translate temp ids to canonical ids through a PositionIndex built once
4. Push BYE winners into their next match, only into slots still TBD

Generation is pure: the same seed document always yields identical Match rows.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from poolplay.errors import ConsistencyError
from poolplay.models.division import Division
from poolplay.models.match import (
    BYE_NAME,
    SLOT_A,
    SLOT_B,
    STAGE_BRACKET,
    STATUS_COMPLETED,
    TBD_NAME,
    Match,
)
from poolplay.services.bracket_seeds import BRACKET_PLATE, SeedDocument, SeedSlot
from poolplay.services.canonical_ids import IdFactory, bracket_match_id, bronze_match_id, canonical_id

logger = logging.getLogger(__name__)

ROUND_FINALS = "Finals"
ROUND_SEMIS = "Semi-Finals"
ROUND_QUARTERS = "Quarter-Finals"
ROUND_BRONZE = "Bronze"


# ============================================================================
# Per-round scoring
# ============================================================================


@dataclass
class GameSettings:
    best_of: int = 1
    points_to_win: int = 11
    win_by: int = 2
    point_cap: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]], base: Optional["GameSettings"] = None) -> "GameSettings":
        merged = asdict(base or cls())
        for key in merged:
            if data and data.get(key) is not None:
                merged[key] = data[key]
        return cls(**merged)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def round_name(round_number: int, total_rounds: int) -> str:
    distance = total_rounds - round_number
    if distance == 0:
        return ROUND_FINALS
    if distance == 1:
        return ROUND_SEMIS
    if distance == 2:
        return ROUND_QUARTERS
    return f"Round {round_number}"


def _round_settings_key(bracket_type: str, distance_from_final: int, is_bronze: bool) -> Optional[str]:
    if bracket_type == BRACKET_PLATE:
        if is_bronze:
            return "plate_bronze"
        return "plate_finals" if distance_from_final == 0 else None
    if is_bronze:
        return "bronze"
    return {0: "finals", 1: "semi_finals", 2: "quarter_finals"}.get(distance_from_final)


def resolve_round_settings(
    division: Division, bracket_type: str, distance_from_final: int, is_bronze: bool = False
) -> GameSettings:
    """Round override if configured, otherwise the division's pool-play settings."""
    base = GameSettings.from_dict(division.game_settings)
    overrides = division.plate_round_settings if bracket_type == BRACKET_PLATE else division.medal_round_settings
    key = _round_settings_key(bracket_type, distance_from_final, is_bronze)
    if key and overrides and overrides.get(key):
        return GameSettings.from_dict(overrides[key], base)
    return base


# ============================================================================
# Plan
# ============================================================================


@dataclass
class PlannedMatch:
    temp_id: str
    position: int
    round_number: int
    side_a: Optional[SeedSlot] = None
    side_b: Optional[SeedSlot] = None
    is_bye: bool = False
    is_third_place: bool = False
    next_temp_id: Optional[str] = None
    next_slot: Optional[str] = None
    loser_next_temp_id: Optional[str] = None
    loser_next_slot: Optional[str] = None


def plan_bracket(doc: SeedDocument) -> List[PlannedMatch]:
    """Build the tree with temporary ids. Positions run 1..N across rounds; bronze is last."""
    if doc.is_empty:
        return []

    planned: List[PlannedMatch] = []
    position = 0

    def new_match(round_number: int) -> PlannedMatch:
        nonlocal position
        position += 1
        pm = PlannedMatch(temp_id=f"temp_{position}", position=position, round_number=round_number)
        planned.append(pm)
        return pm

    previous: List[PlannedMatch] = []
    for pair in sorted(doc.round1_pairs, key=lambda p: p.match_number):
        pm = new_match(1)
        pm.side_a = doc.slots[pair.side_a]
        pm.side_b = doc.slots[pair.side_b] if pair.side_b is not None else None
        pm.is_bye = pair.side_b is None
        previous.append(pm)

    for round_number in range(2, doc.rounds + 1):
        current = []
        for i in range(len(previous) // 2):
            pm = new_match(round_number)
            feeder_a, feeder_b = previous[2 * i], previous[2 * i + 1]
            feeder_a.next_temp_id, feeder_a.next_slot = pm.temp_id, SLOT_A
            feeder_b.next_temp_id, feeder_b.next_slot = pm.temp_id, SLOT_B
            current.append(pm)
        previous = current

    if len(previous) != 1:
        raise ConsistencyError(
            f"Bracket tree did not converge to one final ({len(previous)} matches in last round)",
            {"bracket_size": doc.bracket_size, "rounds": doc.rounds},
        )

    if doc.third_place_match:
        if doc.rounds < 2:
            logger.warning("%s bracket has no semifinals; bronze match skipped", doc.bracket_type)
        else:
            semis = [pm for pm in planned if pm.round_number == doc.rounds - 1]
            bronze = new_match(doc.rounds)
            bronze.is_third_place = True
            semis[0].loser_next_temp_id, semis[0].loser_next_slot = bronze.temp_id, SLOT_A
            semis[1].loser_next_temp_id, semis[1].loser_next_slot = bronze.temp_id, SLOT_B
    return planned


class PositionIndex:
    """temp id -> position -> canonical id. Built once; a miss is an internal error."""

    def __init__(
        self,
        planned: Iterable[PlannedMatch],
        division_id: int,
        bracket_type: str,
        id_factory: IdFactory = canonical_id,
    ):
        self._temp_to_position: Dict[str, int] = {}
        self._position_to_canonical: Dict[int, str] = {}
        for pm in planned:
            if pm.temp_id in self._temp_to_position or pm.position in self._position_to_canonical:
                raise ConsistencyError(
                    f"Duplicate bracket coordinate {pm.temp_id} / position {pm.position}",
                    {"temp_id": pm.temp_id, "position": pm.position},
                )
            self._temp_to_position[pm.temp_id] = pm.position
            if pm.is_third_place:
                self._position_to_canonical[pm.position] = bronze_match_id(division_id, bracket_type, id_factory)
            else:
                self._position_to_canonical[pm.position] = bracket_match_id(
                    division_id, bracket_type, pm.position, id_factory
                )

    def position_of(self, temp_id: str) -> int:
        try:
            return self._temp_to_position[temp_id]
        except KeyError:
            raise ConsistencyError(
                f"Unresolved temp id {temp_id}", {"temp_id": temp_id, "known": sorted(self._temp_to_position)}
            ) from None

    def canonical_for_position(self, position: int) -> str:
        try:
            return self._position_to_canonical[position]
        except KeyError:
            raise ConsistencyError(f"No canonical id for position {position}", {"position": position}) from None

    def resolve(self, temp_id: Optional[str]) -> Optional[str]:
        if temp_id is None:
            return None
        return self.canonical_for_position(self.position_of(temp_id))


# ============================================================================
# Build
# ============================================================================


def _fill_side(match: Match, slot: str, seed: Optional[SeedSlot], placeholder: str) -> None:
    prefix = "team_a" if slot == SLOT_A else "team_b"
    setattr(match, f"{prefix}_id", seed.team_id if seed else None)
    setattr(match, f"{prefix}_name", seed.name if seed else placeholder)
    setattr(match, f"{prefix}_player_ids", list(seed.player_ids) if seed else [])


def build_bracket_matches(
    division: Division, doc: SeedDocument, id_factory: IdFactory = canonical_id
) -> List[Match]:
    planned = plan_bracket(doc)
    if not planned:
        return []
    index = PositionIndex(planned, division.id, doc.bracket_type, id_factory)

    matches: List[Match] = []
    for pm in planned:
        distance = doc.rounds - pm.round_number
        settings = resolve_round_settings(division, doc.bracket_type, distance, pm.is_third_place)
        match = Match(
            id=index.canonical_for_position(pm.position),
            tournament_id=division.tournament_id,
            division_id=division.id,
            stage=STAGE_BRACKET,
            bracket_type=doc.bracket_type,
            round_number=pm.round_number,
            round_name=ROUND_BRONZE if pm.is_third_place else round_name(pm.round_number, doc.rounds),
            match_number=pm.position,
            bracket_position=pm.position,
            next_match_id=index.resolve(pm.next_temp_id),
            next_match_slot=pm.next_slot,
            loser_next_match_id=index.resolve(pm.loser_next_temp_id),
            loser_next_match_slot=pm.loser_next_slot,
            is_bye=pm.is_bye,
            is_third_place=pm.is_third_place,
            game_settings=settings.to_dict(),
        )
        _fill_side(match, SLOT_A, pm.side_a, TBD_NAME)
        _fill_side(match, SLOT_B, pm.side_b, BYE_NAME if pm.is_bye else TBD_NAME)
        if pm.is_bye:
            match.status = STATUS_COMPLETED
            match.winner_team_id = pm.side_a.team_id
        matches.append(match)

    apply_bye_auto_advance(matches)
    return matches


def is_open_slot(match: Match, slot: str) -> bool:
    prefix = "team_a" if slot == SLOT_A else "team_b"
    return getattr(match, f"{prefix}_id") is None and getattr(match, f"{prefix}_name") == TBD_NAME


def place_in_slot(target: Match, slot: str, source: Match, team_id: int) -> bool:
    """
    Write `team_id` (a side of `source`) into `target`'s slot if the slot is still TBD.
    Returns True when the slot was written. Re-placing the same team is a no-op.
    """
    prefix = "team_a" if slot == SLOT_A else "team_b"
    current = getattr(target, f"{prefix}_id")
    if current == team_id:
        return False
    if not is_open_slot(target, slot):
        logger.warning(
            "Not advancing team %s from %s: %s %s already holds %s",
            team_id,
            source.id,
            target.id,
            slot,
            current,
        )
        return False
    if team_id == source.team_a_id:
        name, player_ids = source.team_a_name, source.team_a_player_ids
    else:
        name, player_ids = source.team_b_name, source.team_b_player_ids
    setattr(target, f"{prefix}_id", team_id)
    setattr(target, f"{prefix}_name", name)
    setattr(target, f"{prefix}_player_ids", list(player_ids or []))
    return True


def apply_bye_auto_advance(matches: Iterable[Match]) -> int:
    """Advance every BYE winner into its next match. Never overwrites a filled slot."""
    matches = list(matches)
    by_id = {m.id: m for m in matches}
    advanced = 0
    for m in matches:
        if not m.is_bye or m.winner_team_id is None or not m.next_match_id:
            continue
        target = by_id.get(m.next_match_id)
        if target is None:
            raise ConsistencyError(
                f"BYE match {m.id} links to missing match {m.next_match_id}",
                {"match_id": m.id, "next_match_id": m.next_match_id},
            )
        if place_in_slot(target, m.next_match_slot, m, m.winner_team_id):
            advanced += 1
    return advanced
