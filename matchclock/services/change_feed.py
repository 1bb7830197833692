"""
Change feed for the matchclock core.

Wraps the repository's push subscriptions for one game and turns each
delivery into the same calls a local action makes. Deliveries are
at-least-once; a result set identical to the previous one is dropped.
"""
from typing import Any, Callable, Dict, List, Optional

from ..models import (
    Game, GamePlan, LineupAssignment, PlannedRotation, PlayTimeRecord,
    PlayerAvailability, Substitution
)
from ..utils import get_logger

logger = get_logger(__name__)

Listener = Callable[[List[Any]], None]


class ChangeFeed:
    """Subscribes to every entity of one game and fans deliveries out to listeners."""

    WATCHED = (Game, GamePlan, LineupAssignment, PlayTimeRecord, PlayerAvailability, Substitution)

    def __init__(self, repository, game_id: str, clock=None):
        self.repository = repository
        self.game_id = game_id
        self.clock = clock
        self.snapshots: Dict[type, List[Any]] = {}
        self._listeners: Dict[type, List[Listener]] = {}
        self._subscriptions = []
        self._game_plan_id: Optional[str] = None
        self._rotation_subscription = None

    @property
    def active(self) -> bool:
        return bool(self._subscriptions)

    def on(self, entity: type, listener: Listener) -> None:
        """Call ``listener`` with the new result set whenever ``entity`` changes."""
        self._listeners.setdefault(entity, []).append(listener)

    def start(self) -> None:
        if self._subscriptions:
            return
        for entity in self.WATCHED:
            filters = {"id": self.game_id} if entity is Game else {"game_id": self.game_id}
            self._subscriptions.append(
                self.repository.subscribe(entity, self._handler(entity), **filters)
            )
        logger.info("Change feed started", game_id=self.game_id)

    def stop(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        if self._rotation_subscription is not None:
            self._rotation_subscription.unsubscribe()
            self._rotation_subscription = None
        self._game_plan_id = None
        logger.info("Change feed stopped", game_id=self.game_id)

    def _handler(self, entity: type) -> Listener:
        def handle(items: List[Any]) -> None:
            self._receive(entity, items)
        return handle

    def _receive(self, entity: type, items: List[Any]) -> None:
        items = sorted(items, key=lambda item: item.id)
        if self.snapshots.get(entity) == items:
            return
        self.snapshots[entity] = items

        if entity is Game and items and self.clock is not None:
            self.clock.apply_remote(items[0])
        if entity is GamePlan:
            self._follow_plan(items[0].id if items else None)

        for listener in self._listeners.get(entity, []):
            listener(items)

    def _follow_plan(self, game_plan_id: Optional[str]) -> None:
        """Planned rotations hang off the plan, so their subscription moves with it."""
        if game_plan_id == self._game_plan_id:
            return
        if self._rotation_subscription is not None:
            self._rotation_subscription.unsubscribe()
            self._rotation_subscription = None
        self._game_plan_id = game_plan_id
        if game_plan_id:
            self._rotation_subscription = self.repository.subscribe(
                PlannedRotation, self._handler(PlannedRotation), game_plan_id=game_plan_id
            )
