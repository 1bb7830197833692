"""
Web application module for matchclock.

This module contains the Flask server exposing the sideline operations of a
:class:`GameSession` as JSON endpoints. Responses use the
``{"success": ...}`` envelope; domain errors carry their context for retry.
"""
import dataclasses
from typing import Any, Dict

from flask import Flask, Response, jsonify, request

from ..errors import (
    ConfigurationError, DuplicateOpenInterval, EligibilityViolation, InvalidTransition,
    MatchClockError, NotFoundError, PartialSubstitutionFailure
)
from ..services.substitution_executor import SubstitutionRequest
from ..utils import get_logger

logger = get_logger(__name__)

ERROR_STATUS = (
    (NotFoundError, 404),
    (InvalidTransition, 409),
    (DuplicateOpenInterval, 409),
    (PartialSubstitutionFailure, 409),
    (EligibilityViolation, 400),
    (ConfigurationError, 400),
)


def status_for(exc: MatchClockError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


def _body() -> Dict[str, Any]:
    """JSON body of the request; an empty or non-JSON body reads as {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _required(data: Dict[str, Any], *names: str):
    missing = [name for name in names if not data.get(name)]
    if missing:
        raise ValueError(f"Missing required field(s): {', '.join(missing)}")
    return [data[name] for name in names]


def create_app(session) -> Flask:
    """
    Create and configure the Flask application for one game session.

    Args:
        session: An opened :class:`~matchclock.services.GameSession`

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)
    app.config["SESSION"] = session

    # ==================== Error handling ==================== #

    @app.errorhandler(MatchClockError)
    def handle_domain_error(exc: MatchClockError):
        body = exc.to_dict()
        body["success"] = False
        return jsonify(body), status_for(exc)

    @app.errorhandler(ValueError)
    def handle_bad_request(exc: ValueError):
        return jsonify({"success": False, "error": str(exc)}), 400

    # ==================== State ==================== #

    @app.route("/api/state", methods=["GET"])
    def get_state():
        """Current clock, lineup, play time and availability."""
        return jsonify({"success": True, "state": session.snapshot()})

    @app.route("/api/session/pointer", methods=["GET"])
    def get_session_pointer():
        return jsonify({"success": True, "pointer": session.resume_pointer().to_json()})

    # ==================== Clock ==================== #

    def _game_response(game):
        return jsonify({"success": True, "game": game.to_dict()})

    @app.route("/api/clock/start", methods=["POST"])
    def start_game():
        """Start the first half, reporting starters marked absent or injured."""
        unavailable = session.check_starters_available()
        game = session.start()
        return jsonify({
            "success": True,
            "game": game.to_dict(),
            "warnings": [
                f"Starter {player_id} is {status.value}" for player_id, status in unavailable
            ],
        })

    @app.route("/api/clock/pause", methods=["POST"])
    def pause_clock():
        return _game_response(session.clock.pause())

    @app.route("/api/clock/resume", methods=["POST"])
    def resume_clock():
        return _game_response(session.clock.resume())

    @app.route("/api/clock/halftime", methods=["POST"])
    def go_to_halftime():
        return _game_response(session.clock.go_to_halftime())

    @app.route("/api/clock/second-half", methods=["POST"])
    def start_second_half():
        return _game_response(session.clock.start_second_half())

    @app.route("/api/clock/end", methods=["POST"])
    def end_game():
        return _game_response(session.clock.end())

    @app.route("/api/clock/tick", methods=["POST"])
    def tick():
        """Advance the clock; hosts call this once a second while running."""
        result = session.tick()
        return jsonify({
            "success": True,
            "game_seconds": result.game_seconds,
            "due_rotation": result.due_rotation.to_dict() if result.due_rotation else None,
            "auto_transition": result.auto_transition,
            "checkpointed": result.checkpointed,
            "game": session.game.to_dict(),
        })

    @app.route("/api/score", methods=["POST"])
    def set_score():
        data = _body()
        game = session.clock.set_score(int(data.get("our_score", 0)),
                                       int(data.get("opponent_score", 0)))
        return _game_response(game)

    @app.route("/api/goal", methods=["POST"])
    def record_goal():
        data = _body()
        return _game_response(session.clock.record_goal(ours=bool(data.get("ours", True))))

    # ==================== Lineup ==================== #

    @app.route("/api/substitution", methods=["POST"])
    def make_substitution():
        """Swap one player for another at a position."""
        position_id, player_out_id, player_in_id = _required(
            _body(), "position_id", "player_out_id", "player_in_id"
        )
        substitution = session.substitute(position_id, player_out_id, player_in_id)
        return jsonify({"success": True, "substitution": substitution.to_dict()})

    @app.route("/api/substitution/batch", methods=["POST"])
    def make_batch():
        """Apply substitutions in order; stops at the first failure."""
        entries = _body().get("substitutions") or []
        requests = [
            SubstitutionRequest(*_required(entry, "position_id", "player_out_id", "player_in_id"))
            for entry in entries
        ]
        result = session.substitute_batch(requests)
        return jsonify({"success": result.ok, "result": result.to_dict()}), (200 if result.ok else 409)

    @app.route("/api/lineup/assign", methods=["POST"])
    def assign_position():
        position_id, player_id = _required(_body(), "position_id", "player_id")
        assignment = session.assign(position_id, player_id)
        return jsonify({"success": True, "assignment": assignment.to_dict()})

    @app.route("/api/queue", methods=["GET"])
    def get_queue():
        return jsonify({"success": True, "queue": [e.to_dict() for e in session.queue.entries]})

    @app.route("/api/queue", methods=["POST"])
    def add_to_queue():
        player_id, position_id = _required(_body(), "player_id", "position_id")
        entry = session.queue.add(player_id, position_id)
        return jsonify({"success": True, "entry": entry.to_dict()})

    @app.route("/api/queue", methods=["DELETE"])
    def clear_queue():
        session.queue.clear()
        return jsonify({"success": True})

    @app.route("/api/queue/execute", methods=["POST"])
    def execute_queue():
        result = session.execute_queue()
        return jsonify({"success": result.ok, "result": result.to_dict()}), (200 if result.ok else 409)

    # ==================== Availability ==================== #

    @app.route("/api/availability/<player_id>/cycle", methods=["POST"])
    def cycle_availability(player_id: str):
        availability = session.cycle_availability(player_id)
        return jsonify({"success": True, "availability": availability.to_dict()})

    @app.route("/api/availability/<player_id>/arrived", methods=["POST"])
    def mark_arrived(player_id: str):
        minute = _body().get("minute")
        availability = session.mark_arrived(player_id, None if minute is None else int(minute))
        return jsonify({"success": True, "availability": availability.to_dict()})

    @app.route("/api/players/<player_id>/injury", methods=["POST"])
    def mark_injured(player_id: str):
        report = session.mark_injured(player_id)
        return jsonify({"success": True, "injury": report.to_dict()})

    @app.route("/api/starters/check", methods=["GET"])
    def check_starters():
        unavailable = session.check_starters_available()
        return jsonify({
            "success": True,
            "unavailable": [{"player_id": pid, "status": status.value} for pid, status in unavailable],
        })

    # ==================== Rotations ==================== #

    @app.route("/api/rotations/<int:rotation_number>/lineup", methods=["GET"])
    def rotation_lineup(rotation_number: int):
        return jsonify({"success": True, "lineup": session.lineup_at_rotation(rotation_number)})

    @app.route("/api/rotations/<int:rotation_number>/diff", methods=["GET"])
    def rotation_diff(rotation_number: int):
        diff = session.rotation_diff(rotation_number)
        return jsonify({"success": True, "substitutions": [s.to_dict() for s in diff]})

    @app.route("/api/rotations/<int:rotation_number>/execute", methods=["POST"])
    def execute_rotation(rotation_number: int):
        result = session.execute_rotation(rotation_number)
        return jsonify({"success": result.ok, "result": result.to_dict()}), (200 if result.ok else 409)

    # ==================== Analytics ==================== #

    @app.route("/api/analytics/report", methods=["GET"])
    def get_analytics_report():
        """Get detailed play time report."""
        report = session.report()
        return jsonify({"success": True, "report": dataclasses.asdict(report)})

    @app.route("/api/analytics/export", methods=["GET"])
    def export_analytics_report():
        """Export the play time report as CSV."""
        report = session.report()
        csv_content = session.analytics.generate_report_csv(report)
        return Response(
            csv_content,
            mimetype="text/csv",
            headers={
                "Content-Disposition": f"attachment; filename=play_time_{session.game_id}.csv"
            },
        )

    return app


def run_web_app(session, host: str = "127.0.0.1", port: int = 7122) -> None:
    """
    Run the web application.

    Args:
        session: Opened game session to serve
        host: Host address to bind to (default: localhost only)
        port: Port number to listen on
    """
    app = create_app(session)
    logger.info("Starting web app", host=host, port=port, game_id=session.game_id)
    app.run(host=host, port=port, debug=False, threaded=False)
