from datetime import timedelta

import pytest

from typehub.access import active_product_ids, can_access, check_access, count_active_subscriptions
from typehub.entitlements import ALL_PRODUCT_IDS
from typehub.errors import Forbidden
from typehub.models.schema import Subscription
from typehub.utils import utcnow

from tests.conftest import make_paragraph, make_user


def subscribe(db, user, product_id, valid_until=None):
    db.add(Subscription(user_id=user.id, product_id=product_id, order_id="order_x", valid_until=valid_until))
    db.commit()


def test_free_paragraph_open_to_everyone(db):
    paragraph = make_paragraph(db, access_type="free")
    user, _ = make_user(db)
    assert can_access(db, None, paragraph)
    assert can_access(db, user, paragraph)


def test_free_after_login_requires_a_user(db):
    paragraph = make_paragraph(db, access_type="free-after-login")
    user, _ = make_user(db)
    assert not can_access(db, None, paragraph)
    assert can_access(db, user, paragraph)


def test_paid_paragraph_denied_without_user(db):
    paragraph = make_paragraph(db, access_type="paid", is_free=False)
    assert not can_access(db, None, paragraph)
    with pytest.raises(Forbidden) as exc:
        check_access(db, None, paragraph)
    assert exc.value.detail == "Sign in to access this passage."


def test_paid_paragraph_needs_matching_subscription(db):
    paragraph = make_paragraph(db, access_type="paid", is_free=False)
    user, _ = make_user(db)
    subscribe(db, user, "english-mpsc")
    assert not can_access(db, user, paragraph)
    with pytest.raises(Forbidden) as exc:
        check_access(db, user, paragraph)
    assert exc.value.detail == "Upgrade to access this passage."

    subscribe(db, user, "english-court", utcnow() + timedelta(days=3))
    assert can_access(db, user, paragraph)


def test_expired_subscription_denies(db):
    paragraph = make_paragraph(db, access_type="paid", is_free=False)
    user, _ = make_user(db)
    subscribe(db, user, "english-court", utcnow() - timedelta(minutes=1))
    assert not can_access(db, user, paragraph)


def test_perpetual_subscription_allows(db):
    paragraph = make_paragraph(db, access_type="paid", is_free=False)
    user, _ = make_user(db)
    subscribe(db, user, "english-court", None)
    assert can_access(db, user, paragraph)


def test_legacy_is_free_flag_when_access_type_missing(db):
    legacy_paid = make_paragraph(db, access_type=None, is_free=False)
    legacy_free = make_paragraph(db, title="Legacy free", access_type=None, is_free=True)
    assert not can_access(db, None, legacy_paid)
    assert can_access(db, None, legacy_free)


def test_legacy_paid_flag_opens_everything_until_first_subscription(db):
    court = make_paragraph(db, access_type="paid", is_free=False)
    mpsc = make_paragraph(db, title="MPSC", category="mpsc", access_type="paid", is_free=False)
    user, _ = make_user(db, is_paid=True)

    assert can_access(db, user, court)
    assert can_access(db, user, mpsc)
    assert active_product_ids(db, user) == list(ALL_PRODUCT_IDS)

    subscribe(db, user, "english-mpsc", utcnow() + timedelta(days=30))
    assert can_access(db, user, mpsc)
    assert not can_access(db, user, court)
    assert active_product_ids(db, user) == ["english-mpsc"]


def test_count_active_subscriptions(db):
    user, _ = make_user(db)
    now = utcnow()
    subscribe(db, user, "english-court", now - timedelta(days=1))
    subscribe(db, user, "english-mpsc", now + timedelta(days=1))
    subscribe(db, user, "marathi-mpsc", None)
    assert count_active_subscriptions(db, user.id, now) == 2


def test_unmapped_category_fails_open(db):
    paragraph = make_paragraph(db, category="typing-club", access_type="paid", is_free=False)
    user, _ = make_user(db)
    assert can_access(db, user, paragraph)
