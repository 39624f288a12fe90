"""
In-process feed of entity aggregates.

Screens that show a balance subscribe once and get a fresh snapshot after
every committed balance-affecting write, instead of polling.
"""

import threading
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from khata.logger_config import logger
from khata.models.entity import Entity


@dataclass(frozen=True)
class AggregateSnapshot:
    entity_id: str
    total_balance: Decimal
    total_debit: Decimal
    total_credit: Decimal
    last_activity_date: Optional[str]


Callback = Callable[[AggregateSnapshot], None]


class Subscription:
    def __init__(self, feed: "AggregateFeed", entity_id: str, callback: Callback):
        self.feed = feed
        self.entity_id = entity_id
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.feed._remove(self)
            self.active = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.unsubscribe()


class AggregateFeed:
    def __init__(self):
        self._subscribers: Dict[str, List[Subscription]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, entity_id: str, callback: Callback) -> Subscription:
        subscription = Subscription(self, entity_id, callback)
        with self._lock:
            self._subscribers[entity_id].append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.entity_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(subscription.entity_id, None)

    def has_subscribers(self, entity_id: str) -> bool:
        with self._lock:
            return bool(self._subscribers.get(entity_id))

    def publish(self, snapshot: AggregateSnapshot) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(snapshot.entity_id, []))
        for subscription in subscribers:
            try:
                subscription.callback(snapshot)
            except Exception:
                logger.exception(f"Aggregate subscriber failed for {snapshot.entity_id}")


aggregate_feed = AggregateFeed()


def snapshot_of(entity: Entity) -> AggregateSnapshot:
    return AggregateSnapshot(
        entity_id=entity.id,
        total_balance=entity.total_balance,
        total_debit=entity.total_debit,
        total_credit=entity.total_credit,
        last_activity_date=entity.last_activity_date,
    )


def publish_aggregate(db: Session, entity_id: str, feed: AggregateFeed = aggregate_feed) -> None:
    """Re-read the committed root copy and push it to subscribers, if any."""
    if not feed.has_subscribers(entity_id):
        return
    entity = db.query(Entity).filter(Entity.id == entity_id).first()
    if entity is not None:
        db.refresh(entity)
        feed.publish(snapshot_of(entity))
