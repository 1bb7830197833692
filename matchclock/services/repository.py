"""
Repository interface for the matchclock core.

Every entity is reached through the same six calls: create, update, delete,
get, list and subscribe. Filters are attribute equality on the model
dataclasses (``game_id="g1"``). Subscriptions push the full current result
set to the callback on subscribe and after every change that touches it;
delivery is at-least-once, so callbacks must tolerate repeats.
"""
import copy
import dataclasses
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from ..errors import NotFoundError, RepositoryError
from ..utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
SubscriptionCallback = Callable[[List[Any]], None]


class Subscription:
    """Handle returned by :meth:`Repository.subscribe`."""

    def __init__(self, entity: type, filters: Dict[str, Any], callback: SubscriptionCallback,
                 on_close: Callable[["Subscription"], None]):
        self.entity = entity
        self.filters = dict(filters)
        self.callback = callback
        self._on_close = on_close
        self.active = True

    def matches(self, item: Any) -> bool:
        return all(getattr(item, key, None) == value for key, value in self.filters.items())

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._on_close(self)


class Repository(ABC):
    """Abstract store the core reads from and writes to."""

    @abstractmethod
    def create(self, item: T) -> T:
        """Persist a new entity; an empty ``id`` is assigned by the store."""

    @abstractmethod
    def update(self, entity: Type[T], entity_id: str, **changes: Any) -> T:
        """Apply field changes to an existing entity and return the new value."""

    @abstractmethod
    def delete(self, entity: Type[T], entity_id: str) -> None:
        """Remove an entity."""

    @abstractmethod
    def get(self, entity: Type[T], entity_id: str) -> Optional[T]:
        """Fetch one entity, or None when it does not exist."""

    @abstractmethod
    def list(self, entity: Type[T], **filters: Any) -> List[T]:
        """Fetch every entity matching the equality filters."""

    @abstractmethod
    def subscribe(self, entity: Type[T], callback: SubscriptionCallback, **filters: Any) -> Subscription:
        """Push the current result set now and after every matching change."""


class InMemoryRepository(Repository):
    """
    Dictionary-backed repository used by tests and single-process hosts.

    Items are copied on the way in and out so callers never share mutable
    state with the store, which mirrors how a remote store behaves.
    """

    def __init__(self) -> None:
        self._tables: Dict[type, Dict[str, Any]] = {}
        self._subscriptions: List[Subscription] = []

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------
    def create(self, item: T) -> T:
        entity = type(item)
        table = self._tables.setdefault(entity, {})
        item_id = getattr(item, "id", "") or uuid.uuid4().hex
        if item_id in table:
            raise RepositoryError(f"{entity.__name__} {item_id} already exists",
                                  entity=entity.__name__, entity_id=item_id)
        stored = dataclasses.replace(item, id=item_id)
        table[item_id] = stored
        self._notify(entity, stored, None)
        return copy.deepcopy(stored)

    def update(self, entity: Type[T], entity_id: str, **changes: Any) -> T:
        table = self._tables.get(entity, {})
        current = table.get(entity_id)
        if current is None:
            raise NotFoundError(entity.__name__, entity_id)
        changes.pop("id", None)
        updated = dataclasses.replace(current, **changes)
        table[entity_id] = updated
        self._notify(entity, updated, current)
        return copy.deepcopy(updated)

    def delete(self, entity: Type[T], entity_id: str) -> None:
        table = self._tables.get(entity, {})
        current = table.pop(entity_id, None)
        if current is None:
            raise NotFoundError(entity.__name__, entity_id)
        self._notify(entity, None, current)

    def get(self, entity: Type[T], entity_id: str) -> Optional[T]:
        item = self._tables.get(entity, {}).get(entity_id)
        return copy.deepcopy(item) if item is not None else None

    def list(self, entity: Type[T], **filters: Any) -> List[T]:
        return [
            copy.deepcopy(item)
            for item in self._tables.get(entity, {}).values()
            if all(getattr(item, key, None) == value for key, value in filters.items())
        ]

    # ------------------------------------------------------------------
    # Push subscriptions
    # ------------------------------------------------------------------
    def subscribe(self, entity: Type[T], callback: SubscriptionCallback, **filters: Any) -> Subscription:
        subscription = Subscription(entity, filters, callback, self._subscriptions.remove)
        self._subscriptions.append(subscription)
        self._deliver(subscription)
        return subscription

    def redeliver(self, entity: Optional[type] = None) -> None:
        """Push current result sets again, simulating duplicate delivery."""
        for subscription in list(self._subscriptions):
            if entity is None or subscription.entity is entity:
                self._deliver(subscription)

    def _notify(self, entity: type, new: Any, old: Any) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.active or subscription.entity is not entity:
                continue
            touched = (new is not None and subscription.matches(new)) or (
                old is not None and subscription.matches(old)
            )
            if touched:
                self._deliver(subscription)

    def _deliver(self, subscription: Subscription) -> None:
        items = self.list(subscription.entity, **subscription.filters)
        try:
            subscription.callback(items)
        except Exception:
            # A failing subscriber must not fail the writer that triggered it
            logger.exception(
                "Subscription callback failed",
                entity=subscription.entity.__name__,
                filters=subscription.filters,
            )

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def dump(self) -> Dict[str, List[Dict[str, Any]]]:
        """Serialize every table using each model's ``to_dict``."""
        return {
            entity.__name__: [item.to_dict() for item in table.values()]
            for entity, table in self._tables.items()
        }

    def load(self, data: Dict[str, List[Dict[str, Any]]], models: Dict[str, type]) -> None:
        """Replace the store contents from :meth:`dump` output."""
        self._tables = {}
        for name, rows in data.items():
            entity = models.get(name)
            if entity is None:
                logger.warning("Skipping unknown entity in snapshot", entity=name)
                continue
            table = self._tables.setdefault(entity, {})
            for row in rows:
                item = entity.from_dict(row)
                table[item.id] = item
        for subscription in list(self._subscriptions):
            self._deliver(subscription)
