from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional

from sqlalchemy import or_

from typehub.access import paragraph_price_filter
from typehub.errors import InvalidInput
from typehub.models.auth import CamelModel
from typehub.models.enums import AccessType, Category, Language, PriceTier
from typehub.models.schema import Paragraph


def published_condition():
    # Rows from before the published flag existed stay visible
    return or_(Paragraph.published.is_(True), Paragraph.published.is_(None))


class ParagraphFilter(BaseModel):
    """Typed listing filter, translated to a SQLAlchemy query by ``apply``"""
    language: Optional[Language] = None
    category: Optional[Category] = None
    price: PriceTier = PriceTier.ALL
    published_only: bool = True

    @classmethod
    def from_query(cls, language: Optional[str], category: Optional[str], price: Optional[str]) -> "ParagraphFilter":
        try:
            language_value = Language(language) if language else None
        except ValueError:
            language_value = None
        if language_value is None:
            raise InvalidInput("Invalid or missing 'language' query. Use 'english' or 'marathi'.")

        category = category.strip().lower() if category else None
        try:
            category_value = Category(category) if category else None
        except ValueError:
            raise InvalidInput("Invalid 'category' query. Use 'lessons', 'court-exam', or 'mpsc'.")

        try:
            price_value = PriceTier(price) if price else PriceTier.ALL
        except ValueError:
            raise InvalidInput("Invalid 'price' query. Use 'all', 'free', or 'paid'.")

        return cls(language=language_value, category=category_value, price=price_value)

    def apply(self, query):
        if self.language is not None:
            query = query.filter(Paragraph.language == self.language.value)
        if self.published_only:
            query = query.filter(published_condition())
        if self.category is not None:
            query = query.filter(Paragraph.category == self.category.value)
        price_condition = paragraph_price_filter(self.price)
        if price_condition is not None:
            query = query.filter(price_condition)
        return query


class SubmissionCreate(CamelModel):
    time_taken_seconds: float = Field(..., ge=0)
    accuracy: float = Field(..., ge=0, le=100)
    total_keystrokes: int = Field(..., ge=0)
    backspace_count: int = Field(..., ge=0)
    words_typed: int = Field(..., ge=0)
    wpm: float = Field(..., ge=0)
    kpm: float = Field(..., ge=0)
    incorrect_words_count: int = Field(..., ge=0)
    incorrect_words: List[str]
    correct_words_count: int = Field(..., ge=0)
    user_input: str
    # Completeness inputs, absent from older clients
    omitted_words_count: Optional[int] = Field(None, ge=0)
    total_passage_words: Optional[int] = Field(None, ge=0)


class ParagraphCreate(CamelModel):
    title: str
    is_free: bool
    language: Language
    category: Category
    text: str
    access_type: Optional[AccessType] = None
    order: int = 0
    published: bool = False


class ParagraphUpdate(CamelModel):
    title: Optional[str] = None
    is_free: Optional[bool] = None
    language: Optional[Language] = None
    category: Optional[Category] = None
    text: Optional[str] = None
    access_type: Optional[AccessType] = None
    order: Optional[int] = None
    published: Optional[bool] = None


class UserUpdate(CamelModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    is_paid: Optional[bool] = None


class SubscriptionsUpdate(CamelModel):
    product_ids: List[str] = Field(default_factory=list)
