import threading

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from typehub.database import Base
from typehub.orders import InMemoryOrderStore, PendingOrderData, RedisOrderStore, SqlOrderStore


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.expiry = {}

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex

    def getdel(self, key):
        return self.data.pop(key, None)


def order(order_id="order_1"):
    return PendingOrderData(order_id=order_id, user_id="u1", product_ids=["english-court"], amount_paise=100)


def assert_consumed_once(store):
    store.put(order())
    taken = store.take_and_remove("order_1")
    assert taken == order()
    assert store.take_and_remove("order_1") is None
    assert store.take_and_remove("order_unknown") is None


def test_in_memory_store_consumes_once():
    assert_consumed_once(InMemoryOrderStore())


def test_sql_store_consumes_once(db):
    assert_consumed_once(SqlOrderStore(db))


def test_redis_store_consumes_once():
    client = FakeRedis()
    store = RedisOrderStore(client, ttl_seconds=600)
    assert_consumed_once(store)
    store.put(order("order_2"))
    assert client.expiry["pending_order:order_2"] == 600


def race(take, takers=8):
    """Run ``take`` from several threads at once and collect what each got"""
    barrier = threading.Barrier(takers)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        got = take()
        with lock:
            results.append(got)

    threads = [threading.Thread(target=worker) for _ in range(takers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results


def test_in_memory_store_has_one_winner_under_concurrency():
    store = InMemoryOrderStore()
    store.put(order())
    results = race(lambda: store.take_and_remove("order_1"), takers=16)
    assert len(results) == 16
    assert [r for r in results if r is not None] == [order()]


def test_sql_store_has_one_winner_under_concurrency(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'orders.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = Session()
    SqlOrderStore(setup).put(order())
    setup.close()

    def take():
        session = Session()
        try:
            return SqlOrderStore(session).take_and_remove("order_1")
        finally:
            session.close()

    results = race(take)
    assert len(results) == 8
    assert [r for r in results if r is not None] == [order()]
    engine.dispose()
