"""
Rotation planning for the matchclock core.

Everything here except :class:`RotationMonitor` is a pure function over
lineups (``position_id -> player_id``) and planned rotations.
"""
import math
from collections import OrderedDict
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

from ..models import Lineup, PlannedRotation, PlannedSubstitution
from ..utils import get_logger, now_ts, to_iso
from ..utils.constants import MIN_PLAYERS_PER_ROTATION_GROUP, SECONDS_PER_MINUTE

logger = get_logger(__name__)

Preferences = Mapping[str, Union[str, Iterable[str]]]


def _ordered(rotations: Iterable[PlannedRotation]) -> List[PlannedRotation]:
    return sorted(rotations, key=lambda r: r.rotation_number)


# ----------------------------------------------------------------------
# Lineup replay
# ----------------------------------------------------------------------
def apply_substitution(lineup: Lineup, sub: PlannedSubstitution) -> Lineup:
    """Put ``sub.player_in_id`` at ``sub.position_id``, vacating any other slot they held."""
    result = OrderedDict(
        (position_id, player_id)
        for position_id, player_id in lineup.items()
        if not (player_id == sub.player_in_id and position_id != sub.position_id)
    )
    result[sub.position_id] = sub.player_in_id
    return dict(result)


def compute_lineup_at_rotation(
    starting_lineup: Lineup,
    rotations: Iterable[PlannedRotation],
    target_rotation: int,
) -> Lineup:
    """
    Lineup after every rotation numbered ``<= target_rotation`` has been applied.

    Rotations are replayed in ascending order on a copy; the starting lineup
    is never modified. ``target_rotation == 0`` returns an equal copy.
    """
    lineup = dict(starting_lineup)
    if target_rotation <= 0:
        return lineup
    for rotation in _ordered(rotations):
        if rotation.rotation_number > target_rotation:
            break
        for sub in rotation.planned_substitutions:
            lineup = apply_substitution(lineup, sub)
    return lineup


def compute_lineup_diff(previous: Lineup, new: Lineup) -> List[PlannedSubstitution]:
    """One substitution per position held in both lineups by different players."""
    diff = []
    for position_id, new_player in new.items():
        old_player = previous.get(position_id)
        if old_player and new_player and old_player != new_player:
            diff.append(PlannedSubstitution(old_player, new_player, position_id))
    return diff


# ----------------------------------------------------------------------
# Due rotations
# ----------------------------------------------------------------------
def is_rotation_due(rotation: PlannedRotation, game_seconds: int, half: int) -> bool:
    """A rotation is announced during the minute before its planned minute."""
    return (
        rotation.viewed_at is None
        and rotation.half == half
        and game_seconds // SECONDS_PER_MINUTE == rotation.game_minute - 1
    )


def find_due_rotation(
    rotations: Iterable[PlannedRotation], game_seconds: int, half: int
) -> Optional[PlannedRotation]:
    return next((r for r in _ordered(rotations) if is_rotation_due(r, game_seconds, half)), None)


class RotationMonitor:
    """
    Announces each planned rotation once, shortly before it is due.

    Announcing stamps ``viewed_at`` on the stored rotation so that no
    session triggers it again.
    """

    def __init__(self, repository, game_plan_id: Optional[str]):
        self.repository = repository
        self.game_plan_id = game_plan_id
        self._announced: Set[str] = set()

    def rotations(self) -> List[PlannedRotation]:
        if not self.game_plan_id:
            return []
        return _ordered(self.repository.list(PlannedRotation, game_plan_id=self.game_plan_id))

    def check(self, game_seconds: int, half: int) -> Optional[PlannedRotation]:
        """Return the rotation that just became due, or None."""
        candidates = [r for r in self.rotations() if r.id not in self._announced]
        due = find_due_rotation(candidates, game_seconds, half)
        if due is None:
            return None
        self._announced.add(due.id)
        viewed_at = to_iso(now_ts())
        try:
            due = self.repository.update(PlannedRotation, due.id, viewed_at=viewed_at)
        except Exception as exc:
            logger.warning("Failed to mark rotation viewed", rotation_id=due.id, error=str(exc))
        logger.info(
            "Rotation due",
            rotation_number=due.rotation_number,
            game_minute=due.game_minute,
            half=half,
            game_seconds=game_seconds,
        )
        return due


# ----------------------------------------------------------------------
# Plan generation and checks
# ----------------------------------------------------------------------
def calculate_rotation_minute(
    rotation_number: int,
    rotations_per_half: int,
    rotation_interval_minutes: int,
    half_length_minutes: int,
) -> int:
    """
    Game minute at which a 1-indexed rotation happens.

    First-half rotations fall on multiples of the interval; second-half
    rotations count from the end of the first half.
    """
    if rotation_number <= rotations_per_half:
        return rotation_number * rotation_interval_minutes
    return half_length_minutes + (rotation_number - rotations_per_half) * rotation_interval_minutes


def _parse_preferences(preferred_positions: Optional[Preferences]) -> Dict[str, Set[str]]:
    parsed: Dict[str, Set[str]] = {}
    for player_id, prefs in (preferred_positions or {}).items():
        if isinstance(prefs, str):
            prefs = prefs.split(",")
        cleaned = {p.strip() for p in prefs if p and p.strip()}
        if cleaned:
            parsed[player_id] = cleaned
    return parsed


def _match_positions(positions: Sequence[str], bench: Sequence[str],
                     preferences: Dict[str, Set[str]]) -> Dict[str, str]:
    """Fill ``positions`` from ``bench`` (least played first), preferred positions first."""
    assigned: Dict[str, str] = {}
    used: Set[str] = set()
    for honor_preferences in (True, False):
        for player_id in bench:
            if len(used) >= len(positions):
                break
            if player_id in used:
                continue
            for position_id in positions:
                if position_id in assigned:
                    continue
                if honor_preferences and position_id not in preferences.get(player_id, ()):
                    continue
                assigned[position_id] = player_id
                used.add(player_id)
                break
    return assigned


def calculate_fair_rotations(
    player_ids: Sequence[str],
    starting_lineup: Lineup,
    total_rotations: int,
    rotations_per_half: int,
    max_players_on_field: int,
    goalie_position_id: Optional[str] = None,
    halftime_lineup: Optional[Lineup] = None,
    preferred_positions: Optional[Preferences] = None,
) -> List[List[PlannedSubstitution]]:
    """
    Generate substitution batches that even out play time.

    Each regular rotation swaps the field players with the most rotations
    played for the bench players with the fewest, never moving the
    goalkeeper. The rotation straight after the first half either applies
    ``halftime_lineup`` or swaps in fresh legs across the whole field.

    Args:
        player_ids: Every available player
        starting_lineup: Opening lineup
        total_rotations: Number of batches to generate
        rotations_per_half: Rotations in the first half
        max_players_on_field: Field size
        goalie_position_id: Goalkeeper slot, only changed at halftime
        halftime_lineup: Coach-set lineup for the second half
        preferred_positions: ``player_id -> positions`` (list or comma string)

    Returns:
        One list of substitutions per rotation, in rotation order
    """
    preferences = _parse_preferences(preferred_positions)
    lineup = dict(starting_lineup)
    played = {pid: (1 if pid in lineup.values() else 0) for pid in player_ids}
    batches: List[List[PlannedSubstitution]] = []

    def bench_by_least_played() -> List[str]:
        on_field = set(lineup.values())
        return sorted((p for p in player_ids if p not in on_field), key=lambda p: played.get(p, 0))

    for rotation_number in range(1, total_rotations + 1):
        batch: List[PlannedSubstitution] = []
        if rotation_number == rotations_per_half + 1 and halftime_lineup:
            batch = compute_lineup_diff(lineup, halftime_lineup)
            lineup = dict(halftime_lineup)
        else:
            bench = bench_by_least_played()
            field = [(pos, pid) for pos, pid in lineup.items()]
            if rotation_number == rotations_per_half + 1:
                subs_needed = min(max_players_on_field, len(bench))
                going_out = field[:subs_needed]
            else:
                if goalie_position_id:
                    field = [(pos, pid) for pos, pid in field if pos != goalie_position_id]
                field.sort(key=lambda item: played.get(item[1], 0), reverse=True)
                subs_needed = min(
                    math.ceil(max_players_on_field / MIN_PLAYERS_PER_ROTATION_GROUP),
                    len(bench),
                    len(field),
                )
                going_out = field[:subs_needed] if bench else []
            assignment = _match_positions([pos for pos, _ in going_out], bench, preferences)
            for position_id, player_out in going_out:
                player_in = assignment.get(position_id)
                if player_in is None:
                    continue
                batch.append(PlannedSubstitution(player_out, player_in, position_id))
                lineup[position_id] = player_in

        for player_id in lineup.values():
            played[player_id] = played.get(player_id, 0) + 1
        batches.append(batch)
    return batches


def build_planned_rotations(
    batches: Sequence[Sequence[PlannedSubstitution]],
    game_plan_id: str,
    rotations_per_half: int,
    rotation_interval_minutes: int,
    half_length_minutes: int,
) -> List[PlannedRotation]:
    """Turn generated batches into numbered, timed :class:`PlannedRotation` rows."""
    rotations = []
    for index, batch in enumerate(batches, start=1):
        rotations.append(PlannedRotation(
            game_plan_id=game_plan_id,
            rotation_number=index,
            game_minute=calculate_rotation_minute(
                index, rotations_per_half, rotation_interval_minutes, half_length_minutes
            ),
            half=1 if index <= rotations_per_half else 2,
            planned_substitutions=list(batch),
        ))
    return rotations


def calculate_projected_play_time(
    rotations: Iterable[PlannedRotation],
    starting_lineup: Lineup,
    total_game_minutes: int,
) -> Dict[str, int]:
    """
    Projected minutes on the field per player if the plan runs as written.

    The lineup in force between two rotation minutes counts for that whole
    segment; the last segment runs to ``total_game_minutes``.
    """
    ordered = _ordered(rotations)
    minutes: Dict[str, int] = OrderedDict((pid, 0) for pid in starting_lineup.values())
    lineup = dict(starting_lineup)
    marks = [0] + [r.game_minute for r in ordered] + [total_game_minutes]
    for index in range(len(ordered) + 1):
        if index > 0:
            for sub in ordered[index - 1].planned_substitutions:
                lineup = apply_substitution(lineup, sub)
                minutes.setdefault(sub.player_in_id, 0)
                minutes.setdefault(sub.player_out_id, 0)
        segment = max(0, marks[index + 1] - marks[index])
        for player_id in lineup.values():
            minutes[player_id] = minutes.get(player_id, 0) + segment
    return dict(minutes)


def validate_rotation_plan(
    rotations: Sequence[PlannedRotation],
    max_players_on_field: int,
    starting_lineup: Optional[Lineup] = None,
) -> List[str]:
    """
    Check a plan for common mistakes.

    Without ``starting_lineup`` the first rotation's outgoing players cannot
    be verified and are taken on trust.

    Returns:
        Human-readable problems; empty when the plan looks valid
    """
    if not rotations:
        return ["No rotations planned"]

    errors = []
    field: Set[str] = set(starting_lineup.values()) if starting_lineup else set()
    for index, rotation in enumerate(_ordered(rotations)):
        subs = rotation.planned_substitutions
        label = f"Rotation {rotation.rotation_number}"
        outs = [s.player_out_id for s in subs]
        ins = [s.player_in_id for s in subs]
        if len(set(outs)) != len(outs):
            errors.append(f"{label}: Duplicate players being subbed out")
        if len(set(ins)) != len(ins):
            errors.append(f"{label}: Duplicate players being subbed in")
        for sub in subs:
            if (index > 0 or starting_lineup) and sub.player_out_id not in field:
                errors.append(f"{label}: Player {sub.player_out_id} not on field")
            field.discard(sub.player_out_id)
            field.add(sub.player_in_id)
        if len(field) > max_players_on_field:
            errors.append(f"{label}: Too many players on field ({len(field)})")
    return errors


def rotations_referencing_player(
    rotations: Iterable[PlannedRotation],
    player_id: str,
    after_minute: Optional[int] = None,
) -> List[PlannedRotation]:
    """Rotations (optionally only those after ``after_minute``) that move ``player_id``."""
    found = []
    for rotation in _ordered(rotations):
        if after_minute is not None and rotation.game_minute <= after_minute:
            continue
        if any(player_id in (s.player_in_id, s.player_out_id) for s in rotation.planned_substitutions):
            found.append(rotation)
    return found
