"""
Pending-order stores.

An order id is bound to the buyer and the product ids at order creation and
consumed exactly once at payment verification. ``take_and_remove`` must be
atomic per order id: of two concurrent verifications, only one gets the order.
"""
import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

import redis
from fastapi import Depends
from sqlalchemy.orm import Session

from typehub import config
from typehub.database import get_db
from typehub.models.schema import PendingOrder

logger = logging.getLogger(__name__)

PENDING_ORDER_TTL_SECONDS = 60 * 60 * 24


@dataclass
class PendingOrderData:
    order_id: str
    user_id: str
    product_ids: List[str] = field(default_factory=list)
    amount_paise: int = 0


class OrderStore:
    def put(self, order: PendingOrderData):
        raise NotImplementedError

    def take_and_remove(self, order_id: str) -> Optional[PendingOrderData]:
        raise NotImplementedError


class InMemoryOrderStore(OrderStore):
    """Process-local store. Only safe with a single server process."""

    def __init__(self):
        self._orders: Dict[str, PendingOrderData] = {}
        self._lock = threading.Lock()

    def put(self, order: PendingOrderData):
        with self._lock:
            self._orders[order.order_id] = order

    def take_and_remove(self, order_id: str) -> Optional[PendingOrderData]:
        with self._lock:
            return self._orders.pop(order_id, None)


class SqlOrderStore(OrderStore):
    """Pending orders in the shared database; the DELETE row count picks the winner."""

    def __init__(self, db: Session):
        self.db = db

    def put(self, order: PendingOrderData):
        self.db.add(PendingOrder(
            order_id=order.order_id,
            user_id=order.user_id,
            product_ids=list(order.product_ids),
            amount_paise=order.amount_paise,
        ))
        self.db.commit()

    def take_and_remove(self, order_id: str) -> Optional[PendingOrderData]:
        row = self.db.query(PendingOrder).filter(PendingOrder.order_id == order_id).first()
        if row is None:
            return None
        order = PendingOrderData(
            order_id=row.order_id,
            user_id=row.user_id,
            product_ids=list(row.product_ids or []),
            amount_paise=row.amount_paise,
        )
        self.db.expunge(row)
        deleted = (
            self.db.query(PendingOrder)
            .filter(PendingOrder.order_id == order_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted != 1:
            # a concurrent verification consumed it first
            return None
        return order


class RedisOrderStore(OrderStore):
    key_prefix = "pending_order:"

    def __init__(self, client, ttl_seconds: int = PENDING_ORDER_TTL_SECONDS):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str) -> "RedisOrderStore":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def put(self, order: PendingOrderData):
        self.client.set(self.key_prefix + order.order_id, json.dumps(asdict(order)), ex=self.ttl_seconds)

    def take_and_remove(self, order_id: str) -> Optional[PendingOrderData]:
        raw = self.client.getdel(self.key_prefix + order_id)
        if raw is None:
            return None
        return PendingOrderData(**json.loads(raw))


_memory_store = InMemoryOrderStore()
_redis_store: Optional[RedisOrderStore] = None


def get_order_store(db: Session = Depends(get_db)) -> OrderStore:
    global _redis_store
    if config.ORDER_STORE == "memory":
        return _memory_store
    if config.ORDER_STORE == "redis":
        if not config.REDIS_URL:
            raise RuntimeError("ORDER_STORE=redis requires REDIS_URL")
        if _redis_store is None:
            _redis_store = RedisOrderStore.from_url(config.REDIS_URL)
        return _redis_store
    return SqlOrderStore(db)
