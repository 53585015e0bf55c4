import pytest

from typehub.errors import InvalidInput, VerificationFailed
from typehub.models.payments import PaymentConfirmation
from typehub.models.schema import Subscription
from typehub.orders import SqlOrderStore
from typehub.payments import (
    ADMIN_GRANT_ORDER_ID,
    create_order,
    grant_subscription,
    settle,
    verify_signature,
)
from typehub.utils import utcnow

from tests.conftest import FakeGateway, make_user, sign


def confirmation(order_id, payment_id="pay_1", signature=None):
    return PaymentConfirmation(
        razorpay_order_id=order_id,
        razorpay_payment_id=payment_id,
        razorpay_signature=signature if signature is not None else sign(order_id, payment_id),
    )


def test_verify_signature():
    assert verify_signature("order_1", "pay_1", sign("order_1", "pay_1"))
    assert not verify_signature("order_1", "pay_1", sign("order_1", "pay_2"))
    assert not verify_signature("order_1", "pay_1", sign("order_1", "pay_1", secret="other"))


def test_create_order_prices_bundle(db, order_store):
    user, _ = make_user(db)
    gateway = FakeGateway()
    result = create_order(user, ["english-court", "english-mpsc", "english-court"], gateway, order_store)
    assert result["amount"] == 8900
    assert result["currency"] == "INR"
    assert result["keyId"] == "rzp_test_key"
    assert gateway.orders[0]["amount"] == 8900
    assert len(gateway.orders[0]["receipt"]) <= 40

    pending = order_store.take_and_remove(result["orderId"])
    assert pending.user_id == user.id
    assert pending.product_ids == ["english-court", "english-mpsc"]


def test_create_order_rejects_bad_selection(db, order_store):
    user, _ = make_user(db)
    with pytest.raises(InvalidInput):
        create_order(user, [], FakeGateway(), order_store)
    with pytest.raises(InvalidInput) as exc:
        create_order(user, ["english-court", "hindi-court"], FakeGateway(), order_store)
    assert "hindi-court" in exc.value.detail


def test_settle_grants_once(db, order_store):
    user, _ = make_user(db)
    result = create_order(user, ["english-court", "marathi-mpsc"], FakeGateway(), order_store)

    granted = settle(db, user, confirmation(result["orderId"]), order_store)
    assert granted == ["english-court", "marathi-mpsc"]
    assert user.is_paid is True
    subs = db.query(Subscription).filter(Subscription.user_id == user.id).all()
    assert sorted(s.product_id for s in subs) == ["english-court", "marathi-mpsc"]
    assert all(s.valid_until > utcnow() for s in subs)

    with pytest.raises(VerificationFailed) as exc:
        settle(db, user, confirmation(result["orderId"]), order_store)
    assert exc.value.detail == "Order not found or already processed."
    assert db.query(Subscription).filter(Subscription.user_id == user.id).count() == 2


def test_settle_rejects_bad_signature_without_consuming(db, order_store):
    user, _ = make_user(db)
    result = create_order(user, ["english-court"], FakeGateway(), order_store)
    with pytest.raises(VerificationFailed):
        settle(db, user, confirmation(result["orderId"], signature="deadbeef"), order_store)
    assert settle(db, user, confirmation(result["orderId"]), order_store) == ["english-court"]


def test_settle_rejects_missing_fields(db, order_store):
    user, _ = make_user(db)
    with pytest.raises(VerificationFailed) as exc:
        settle(db, user, PaymentConfirmation(razorpay_order_id="order_1"), order_store)
    assert exc.value.detail == "Missing payment details."


def test_settle_rejects_another_users_order(db, order_store):
    buyer, _ = make_user(db)
    other, _ = make_user(db, sub="g-2", email="ravi@typehub.in")
    result = create_order(buyer, ["english-court"], FakeGateway(), order_store)
    with pytest.raises(VerificationFailed):
        settle(db, other, confirmation(result["orderId"]), order_store)
    assert db.query(Subscription).count() == 0

    # the buyer can still complete their own order
    assert settle(db, buyer, confirmation(result["orderId"]), order_store) == ["english-court"]


def test_grant_keeps_longer_or_perpetual_rows(db):
    user, _ = make_user(db)
    assert grant_subscription(db, user.id, "english-court", ADMIN_GRANT_ORDER_ID, None, None)
    db.commit()
    assert not grant_subscription(db, user.id, "english-court", "order_2", "pay_2", utcnow())
    db.commit()
    rows = db.query(Subscription).filter(Subscription.user_id == user.id).all()
    assert len(rows) == 1
    assert rows[0].valid_until is None


def test_sql_store_keeps_order_after_wrong_user_verifies(db):
    store = SqlOrderStore(db)
    buyer, _ = make_user(db)
    other, _ = make_user(db, sub="g-2", email="ravi@typehub.in")
    result = create_order(buyer, ["english-mpsc"], FakeGateway(), store)
    with pytest.raises(VerificationFailed):
        settle(db, other, confirmation(result["orderId"]), store)
    assert settle(db, buyer, confirmation(result["orderId"]), store) == ["english-mpsc"]
