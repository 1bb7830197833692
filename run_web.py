#!/usr/bin/env python3
"""
Main entry point for the matchclock web host.

Loads a store snapshot (or starts an empty store with one scheduled game),
resumes the game the session pointer names when it is still fresh, and
serves the session over Flask.
"""
import argparse

from matchclock import Game, InMemoryRepository, ServiceFactory, configure_logging, resume_session
from matchclock.services import PersistenceService
from matchclock.ui import run_web_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve a matchclock game session")
    parser.add_argument("--snapshot", help="Store snapshot JSON file to load")
    parser.add_argument("--pointer", default="session_pointer.json", help="Session pointer file")
    parser.add_argument("--game", default="demo-game", help="Game id to manage")
    parser.add_argument("--half-length", type=int, default=30, help="Half length in minutes")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=7122)
    parser.add_argument("--log-format", choices=["text", "json"], default="text")
    args = parser.parse_args()

    configure_logging(fmt=args.log_format)

    if args.snapshot:
        repository = PersistenceService.load_repository_from_file(args.snapshot)
    else:
        repository = InMemoryRepository()
    factory = ServiceFactory()
    settings = factory.resolve_settings(half_length_minutes=args.half_length)

    pointer = PersistenceService.load_session_pointer(args.pointer)
    session = resume_session(pointer, repository, factory, settings=settings)
    if session is None:
        if repository.get(Game, args.game) is None:
            repository.create(Game(id=args.game, team_id="demo-team"))
        session = factory.create_session(repository, args.game, settings=settings).open()
    PersistenceService.save_session_pointer(session.resume_pointer(), args.pointer)

    run_web_app(session, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
