"""
Product catalogue and bundle pricing.

A product unlocks every paid paragraph of one (language, category) pair.
Lessons are always free. Prices are in paise.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from typehub.models.enums import Category, Language


@dataclass(frozen=True)
class Product:
    product_id: str
    name: str
    amount_paise: int
    language: Optional[Language] = None
    category: Optional[Category] = None

    def to_dict(self) -> Dict:
        return {
            "productId": self.product_id,
            "name": self.name,
            "amountPaise": self.amount_paise,
            "language": self.language.value if self.language else None,
            "category": self.category.value if self.category else None,
        }


PRODUCTS: List[Product] = [
    Product("english-court", "English Court Typing", 100, Language.ENGLISH, Category.COURT_EXAM),
    Product("english-mpsc", "English MPSC Typing Exam", 4900, Language.ENGLISH, Category.MPSC),
    Product("marathi-court", "Marathi Court Exam", 4900, Language.MARATHI, Category.COURT_EXAM),
    Product("marathi-mpsc", "Marathi MPSC Typing Exam", 4900, Language.MARATHI, Category.MPSC),
]

PRODUCTS_BY_ID: Dict[str, Product] = {p.product_id: p for p in PRODUCTS}
ALL_PRODUCT_IDS: List[str] = [p.product_id for p in PRODUCTS]

_PRODUCT_BY_PAIR = {
    (p.language, p.category): p.product_id
    for p in PRODUCTS
    if p.language and p.category
}

# Fixed bundle totals by number of distinct products. Any other size is priced item by item.
BUNDLE_TOTAL_PAISE: Dict[int, int] = {
    2: 8900,
    3: 13200,
    4: 17500,
}


def get_product(product_id: str) -> Optional[Product]:
    return PRODUCTS_BY_ID.get(product_id)


def product_for(language, category) -> Optional[str]:
    """Product required for paid content in (language, category), or None.

    Unknown pairs return None, i.e. nothing to buy.
    """
    try:
        language = Language(language)
        category = Category(category)
    except ValueError:
        return None
    if category == Category.LESSONS:
        return None
    return _PRODUCT_BY_PAIR.get((language, category))


def bundle_price(product_ids: Iterable[str]) -> int:
    """Total in paise for buying these products together.

    Duplicates collapse before counting. An empty selection costs 0 and must
    be rejected by the caller.
    """
    unique = set(product_ids)
    if not unique:
        return 0
    fixed_total = BUNDLE_TOTAL_PAISE.get(len(unique))
    if fixed_total is not None:
        return fixed_total
    return sum(PRODUCTS_BY_ID[pid].amount_paise for pid in unique if pid in PRODUCTS_BY_ID)


def bundle_rules() -> List[Dict]:
    return [
        {"count": count, "amountPaise": amount}
        for count, amount in sorted(BUNDLE_TOTAL_PAISE.items())
    ]
