"""Tests for the game session, resume pointers, analytics and persistence."""

import json
import os

import pytest

from matchclock.errors import ConfigurationError, EligibilityViolation, NotFoundError
from matchclock.models import (
    AvailabilityStatus, Game, GamePlan, GameSettings, GameStatus, PlannedRotation,
    PlannedSubstitution, PlayTimeRecord, SessionResumePointer
)
from matchclock.services import (
    InMemoryRepository, PersistenceService, PlayTimeLedger, ServiceFactory, resume_session
)
from matchclock.utils import to_iso

BASE = 1_700_000_000.0
STARTING = {"GK": "P1", "CB": "P2", "ST": "P3"}


def make_repository(with_plan=True):
    repository = InMemoryRepository()
    repository.create(Game(id="g1", team_id="t1"))
    if with_plan:
        repository.create(GamePlan(id="plan1", game_id="g1", total_rotations=2,
                                   starting_lineup=dict(STARTING)))
        repository.create(PlannedRotation(
            id="r1", game_plan_id="plan1", rotation_number=1, game_minute=10, half=1,
            planned_substitutions=[PlannedSubstitution("P2", "P4", "CB")],
        ))
        repository.create(PlannedRotation(
            id="r2", game_plan_id="plan1", rotation_number=2, game_minute=20, half=1,
            planned_substitutions=[PlannedSubstitution("P3", "P5", "ST")],
        ))
    return repository


def open_session(repository=None, settings=None):
    repository = repository or make_repository()
    factory = ServiceFactory()
    session = factory.create_session(repository, "g1", settings=settings, half_length_minutes=30)
    return repository, session.open(now=BASE)


# ---------- Factory ---------- #

def test_factory_requires_a_half_length():
    with pytest.raises(ConfigurationError):
        ServiceFactory().create_session(make_repository(), "g1")

    session = ServiceFactory(GameSettings()).create_session(make_repository(), "g1")
    assert session.settings.half_length_minutes == 30


def test_opening_missing_game_raises():
    session = ServiceFactory(GameSettings()).create_session(InMemoryRepository(), "nope")
    with pytest.raises(NotFoundError):
        session.open(now=BASE)


# ---------- Plan and rotations ---------- #

def test_open_seeds_starters_from_plan():
    _, session = open_session()

    assert session.lineup() == STARTING
    assert all(a.is_starter for a in session.executor.assignments())
    assert [r.rotation_number for r in session.planned_rotations()] == [1, 2]


def test_rotation_views_and_execution():
    _, session = open_session()
    session.start(now=BASE)

    assert session.lineup_at_rotation(1) == {"GK": "P1", "CB": "P4", "ST": "P3"}
    assert session.rotation_diff(2) == [PlannedSubstitution("P3", "P5", "ST")]
    with pytest.raises(NotFoundError):
        session.rotation(9)

    result = session.execute_rotation(1, now=BASE + 600)

    assert result.ok
    assert session.lineup()["CB"] == "P4"
    assert not session.ledger.is_on_field("P2")
    assert session.ledger.cumulative_play_time("P2", 900) == 600


def test_mark_injured_reports_vacated_position_and_plans():
    _, session = open_session()
    session.start(now=BASE)

    report = session.mark_injured("P3", now=BASE + 900)

    assert report.to_dict() == {
        "playerId": "P3",
        "gameSeconds": 900,
        "vacatedPositionId": "ST",
        "affectedRotations": [2],
    }
    assert "ST" not in session.lineup()
    assert session.availability.status_of("P3") == AvailabilityStatus.INJURED
    assert not session.availability.is_eligible("P3", 16)


def test_unavailable_starters_are_reported_but_do_not_block_start():
    _, session = open_session()
    session.cycle_availability("P2", now=BASE)

    assert session.check_starters_available() == [("P2", AvailabilityStatus.ABSENT)]
    game = session.start(now=BASE)
    assert game.status == GameStatus.IN_PROGRESS


def test_execute_queue_fills_empty_slots_and_substitutes():
    _, session = open_session()
    session.start(now=BASE)
    session.queue.add("P6", "CB")
    session.queue.add("P7", "LB")

    result = session.execute_queue(now=BASE + 300)

    assert result.ok
    assert session.lineup() == {"GK": "P1", "CB": "P6", "ST": "P3", "LB": "P7"}
    assert len(session.queue) == 0
    assert session.ledger.open_record_for("P7").start_game_seconds == 300


def test_execute_queue_reads_occupant_again_for_each_entry():
    _, session = open_session()
    session.start(now=BASE)
    session.queue.add("P6", "CB")
    session.queue.add("P7", "CB")

    result = session.execute_queue(now=BASE + 300)

    assert result.ok
    assert [o.request.player_out_id for o in result.applied] == ["P2", "P6"]
    assert session.lineup()["CB"] == "P7"
    open_at_cb = [r.player_id for r in session.ledger.records()
                  if r.is_open and r.position_id == "CB"]
    assert open_at_cb == ["P7"]
    assert not session.ledger.is_on_field("P6")


def test_rotation_after_manual_swap_leaves_new_occupant_on_field():
    _, session = open_session()
    session.start(now=BASE)
    session.substitute("CB", "P2", "P6", now=BASE + 300)

    result = session.execute_rotation(1, now=BASE + 600)

    assert not result.ok
    assert isinstance(result.error, EligibilityViolation)
    assert result.applied == []
    assert session.lineup()["CB"] == "P6"
    assert session.ledger.is_on_field("P6")
    assert session.ledger.open_record_for("P4") is None


def test_snapshot_describes_live_state():
    _, session = open_session()
    session.start(now=BASE)

    state = session.snapshot(now=BASE + 125)

    assert state["gameSeconds"] == 125
    assert state["clock"] == "02:05"
    assert state["display"] == "2' (1st Half)"
    assert state["running"] is True
    assert state["playTime"]["P1"] == 125
    assert state["lastPersistError"] is None


# ---------- Resume ---------- #

def test_resume_session_rejects_unusable_pointers():
    repository = make_repository()
    factory = ServiceFactory(GameSettings())
    fresh = SessionResumePointer.capture("g1", "t1", BASE)

    assert resume_session(None, repository, factory, now=BASE) is None
    assert resume_session(fresh, repository, factory, now=BASE + 13 * 3600) is None
    old_format = SessionResumePointer("g1", "t1", to_iso(BASE), version=0)
    assert resume_session(old_format, repository, factory, now=BASE) is None
    missing = SessionResumePointer.capture("gone", "t1", BASE)
    assert resume_session(missing, repository, factory, now=BASE) is None
    assert resume_session(fresh, repository, ServiceFactory(), now=BASE) is None

    repository.update(Game, "g1", status=GameStatus.COMPLETED)
    assert resume_session(fresh, repository, factory, now=BASE) is None


def test_resume_session_reopens_running_game():
    repository = make_repository()
    repository.update(Game, "g1", status=GameStatus.IN_PROGRESS, elapsed_seconds=300,
                      last_start_time=to_iso(BASE))
    pointer = SessionResumePointer.capture("g1", "t1", BASE + 60)

    session = resume_session(pointer, repository, ServiceFactory(GameSettings()), now=BASE + 120)

    assert session is not None
    assert session.clock.running_locally
    assert session.current_game_seconds(BASE + 120) == 420


def test_pointer_json_parsing():
    pointer = SessionResumePointer.capture("g1", "t1", BASE)

    assert SessionResumePointer.from_json(pointer.to_json()) == pointer
    assert SessionResumePointer.from_json("") is None
    assert SessionResumePointer.from_json("not json") is None
    assert SessionResumePointer.from_json(json.dumps({"gameId": "g1"})) is None
    assert SessionResumePointer.from_json(json.dumps(["g1"])) is None


# ---------- Analytics ---------- #

def make_played_session():
    settings = GameSettings(max_players_on_field=2)
    _, session = open_session(make_repository(with_plan=False), settings=settings)
    session.assign("a", "P1")
    session.assign("b", "P2")
    session.start(now=BASE)
    session.substitute("b", "P2", "P3", now=BASE + 600)
    return session


def test_report_splits_field_time_evenly():
    session = make_played_session()

    report = session.report(now=BASE + 900)

    assert report.roster_size == 3
    assert report.field_seconds_total == 1800
    assert report.target_seconds_per_player == 600
    assert [p.player_id for p in report.players] == ["P3", "P2", "P1"]
    assert [p.fairness for p in report.players] == ["under", "ok", "over"]
    p3 = report.players[0]
    assert (p3.on_field, p3.position_id, p3.active_stint_seconds, p3.bench_seconds) == (
        True, "b", 300, 600
    )
    assert report.fairness_counts == {"under": 1, "ok": 1, "over": 1}


def test_report_csv_export():
    session = make_played_session()
    report = session.report(now=BASE + 900)

    lines = session.analytics.generate_report_csv(report).splitlines()

    assert lines[0] == "Play Time Report"
    assert "Game,g1" in lines
    assert "P3,yes,b,0,300,300,600,-300,600,50.0,under,5:00" in lines

    with pytest.raises(ValueError):
        session.analytics.generate_report_csv(session.report(roster=[], now=BASE + 900))


# ---------- Persistence ---------- #

def test_snapshot_file_round_trip_keeps_open_intervals(tmp_path):
    session = make_played_session()
    path = str(tmp_path / "saves" / "store.json")

    PersistenceService.save_repository_to_file(session.repository, path)
    loaded = PersistenceService.load_repository_from_file(path)

    records = loaded.list(PlayTimeRecord, game_id="g1")
    assert PlayTimeLedger(loaded, "g1").records() == session.ledger.records()
    assert sum(1 for r in records if r.is_open) == 2
    game = loaded.get(Game, "g1")
    assert game.status == GameStatus.IN_PROGRESS
    assert game.last_start_time == to_iso(BASE)


def test_loading_bad_snapshot_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        PersistenceService.load_repository_from_file(str(tmp_path / "missing.json"))

    not_a_snapshot = tmp_path / "list.json"
    not_a_snapshot.write_text("[1, 2, 3]", encoding="utf-8")
    with pytest.raises(ValueError):
        PersistenceService.load_repository_from_file(str(not_a_snapshot))


def test_session_pointer_file(tmp_path):
    path = str(tmp_path / "pointer.json")
    pointer = SessionResumePointer.capture("g1", "t1", BASE)

    assert PersistenceService.load_session_pointer(path) is None
    PersistenceService.save_session_pointer(pointer, path)
    assert PersistenceService.load_session_pointer(path) == pointer
    PersistenceService.clear_session_pointer(path)
    assert PersistenceService.load_session_pointer(path) is None


def test_auto_save_lists_recent_saves(tmp_path):
    repository = make_repository()
    path = PersistenceService.auto_save(repository, str(tmp_path))

    assert path is not None
    recent = PersistenceService.get_recent_saves(str(tmp_path))
    assert [name for name, _ in recent] == [os.path.basename(path)]
    assert PersistenceService.get_recent_saves(str(tmp_path / "nowhere")) == []
