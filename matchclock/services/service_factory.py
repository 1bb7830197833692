"""
Service Factory for dependency injection.

This module provides a factory for creating properly configured service
instances for one game, with the repository injected into every component.
"""
from typing import Optional

from ..models import GameSettings
from .analytics_service import AnalyticsService
from .availability_tracker import AvailabilityTracker
from .change_feed import ChangeFeed
from .game_clock import GameClock
from .game_session import GameSession
from .persistence_service import PersistenceService
from .play_time_ledger import PlayTimeLedger
from .rotation_planner import RotationMonitor
from .substitution_executor import SubstitutionExecutor, SubstitutionQueue


class ServiceFactory:
    """
    Factory for creating service instances with their collaborators wired in.

    Settings passed to the constructor are the default for every session;
    a team's half length in minutes can be given per session instead.
    """

    def __init__(self, settings: Optional[GameSettings] = None):
        self.settings = settings
        self._persistence_service: Optional[PersistenceService] = None

    def resolve_settings(self, settings: Optional[GameSettings] = None,
                         half_length_minutes: Optional[int] = None) -> GameSettings:
        """
        Pick the settings for a game.

        Raises:
            ConfigurationError: If no settings and no half length are available
        """
        if settings is not None:
            return settings
        if half_length_minutes is not None or self.settings is None:
            return GameSettings.from_half_length_minutes(half_length_minutes)
        return self.settings

    def create_ledger(self, repository, game_id: str) -> PlayTimeLedger:
        return PlayTimeLedger(repository, game_id)

    def create_availability_tracker(self, repository, game_id: str,
                                    settings: GameSettings) -> AvailabilityTracker:
        return AvailabilityTracker(repository, game_id, settings.half_length_minutes)

    def create_clock(self, repository, game_id: str, settings: GameSettings,
                     ledger: Optional[PlayTimeLedger] = None,
                     rotation_monitor: Optional[RotationMonitor] = None) -> GameClock:
        return GameClock(
            repository,
            game_id,
            settings,
            ledger=ledger if ledger is not None else self.create_ledger(repository, game_id),
            rotation_monitor=rotation_monitor,
        )

    def create_session(
        self,
        repository,
        game_id: str,
        settings: Optional[GameSettings] = None,
        half_length_minutes: Optional[int] = None,
    ) -> GameSession:
        """
        Create a complete, unopened :class:`GameSession`.

        Args:
            repository: Store shared by every component
            game_id: Game to manage
            settings: Explicit per-game settings
            half_length_minutes: Team half length, used when settings are omitted

        Returns:
            Configured session; call :meth:`GameSession.open` to load it

        Raises:
            ConfigurationError: If no half length can be determined
        """
        settings = self.resolve_settings(settings, half_length_minutes)
        ledger = self.create_ledger(repository, game_id)
        availability = self.create_availability_tracker(repository, game_id, settings)
        queue = SubstitutionQueue()
        executor = SubstitutionExecutor(repository, game_id, ledger, availability, queue)
        rotation_monitor = RotationMonitor(repository, None)
        clock = self.create_clock(repository, game_id, settings, ledger, rotation_monitor)
        change_feed = ChangeFeed(repository, game_id, clock)
        analytics = AnalyticsService(repository, game_id, clock, ledger, settings)
        return GameSession(
            repository, game_id, settings, clock, ledger, executor,
            availability, rotation_monitor, change_feed, analytics, queue,
        )

    def persistence_service(self) -> PersistenceService:
        """Get singleton persistence service."""
        if self._persistence_service is None:
            self._persistence_service = PersistenceService()
        return self._persistence_service
