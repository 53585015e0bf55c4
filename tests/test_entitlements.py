from typehub.entitlements import (
    ALL_PRODUCT_IDS,
    bundle_price,
    bundle_rules,
    get_product,
    product_for,
)


def test_product_for_paid_categories():
    assert product_for("english", "court-exam") == "english-court"
    assert product_for("english", "mpsc") == "english-mpsc"
    assert product_for("marathi", "court-exam") == "marathi-court"
    assert product_for("marathi", "mpsc") == "marathi-mpsc"


def test_lessons_and_unknown_pairs_need_no_product():
    assert product_for("english", "lessons") is None
    assert product_for("hindi", "mpsc") is None
    assert product_for("english", "typing-club") is None


def test_single_item_costs_its_own_price():
    assert bundle_price(["english-court"]) == 100
    assert bundle_price(["marathi-mpsc"]) == 4900


def test_bundle_totals():
    assert bundle_price(["english-court", "english-mpsc"]) == 8900
    assert bundle_price(["english-court", "english-mpsc", "marathi-court"]) == 13200
    assert bundle_price(ALL_PRODUCT_IDS) == 17500


def test_duplicates_collapse_before_pricing():
    assert bundle_price(["english-mpsc", "english-mpsc"]) == 4900
    assert bundle_price(["english-mpsc", "marathi-mpsc", "english-mpsc"]) == 8900


def test_empty_selection_costs_nothing():
    assert bundle_price([]) == 0


def test_catalogue_lookup():
    product = get_product("english-court")
    assert product.amount_paise == 100
    assert product.to_dict()["productId"] == "english-court"
    assert get_product("nope") is None
    assert [rule["count"] for rule in bundle_rules()] == [2, 3, 4]
