"""
Seed the database with starter English passages.

Run with:  python -m typehub.seed
"""
import logging
import sys

from typehub.database import Base, SessionLocal, engine
from typehub.models.enums import AccessType, Category, Language
from typehub.models.schema import Paragraph

logger = logging.getLogger(__name__)

ENGLISH_PARAGRAPHS = [
    {
        "title": "The Quick Brown Fox",
        "category": Category.LESSONS,
        "access_type": AccessType.FREE,
        "solved_count": 124,
        "text": "The quick brown fox jumps over the lazy dog. Pack my box with five dozen liquor jugs. How vexingly quick daft zebras jump!",
    },
    {
        "title": "Government Exam Basics",
        "category": Category.COURT_EXAM,
        "access_type": AccessType.FREE,
        "solved_count": 89,
        "text": "India is a sovereign, socialist, secular, democratic republic. The Constitution of India is the supreme law of the land. The President is the head of state and the Prime Minister is the head of government.",
    },
    {
        "title": "Maharashtra State GK",
        "category": Category.LESSONS,
        "access_type": AccessType.FREE,
        "solved_count": 56,
        "text": "Maharashtra is the second-most populous state in India. Mumbai is its capital and financial hub. The state has a rich cultural heritage and is known for the Marathi language, Bollywood, and historical sites like the Ajanta and Ellora caves.",
    },
    {
        "title": "Current Affairs Summary",
        "category": Category.MPSC,
        "access_type": AccessType.PAID,
        "solved_count": 34,
        "text": "Digital India aims to transform the country into a digitally empowered society. The initiative focuses on digital infrastructure, digital literacy, and digital delivery of services. Several schemes have been launched to promote cashless transactions and e-governance.",
    },
    {
        "title": "Economic Development",
        "category": Category.MPSC,
        "access_type": AccessType.FREE_AFTER_LOGIN,
        "solved_count": 72,
        "text": "The Indian economy has shown resilience despite global challenges. Agriculture, manufacturing, and services are the three major sectors. The government has introduced various reforms to boost growth, including GST and initiatives for ease of doing business.",
    },
    {
        "title": "Advanced Comprehension",
        "category": Category.MPSC,
        "access_type": AccessType.PAID,
        "solved_count": 18,
        "text": "The implementation of sustainable development goals requires coordinated efforts between the central and state governments. Policies must address environmental degradation, inequality, and access to quality education and healthcare. Stakeholder participation and transparent governance are essential for long-term success.",
    },
    {
        "title": "Paragraph Practice One",
        "category": Category.LESSONS,
        "access_type": AccessType.FREE,
        "solved_count": 210,
        "text": "Practice makes perfect. Type regularly to improve your speed and accuracy. Start with easy passages and gradually move to difficult ones. Consistency is the key to success in typing exams.",
    },
    {
        "title": "Premium Passage",
        "category": Category.COURT_EXAM,
        "access_type": AccessType.PAID,
        "solved_count": 12,
        "text": "The judiciary plays a pivotal role in upholding the rule of law and protecting the fundamental rights of citizens. Judicial independence ensures that courts can act without fear or favour. The Constitution provides for a unified judiciary with the Supreme Court at the apex, followed by High Courts and subordinate courts across the states and union territories.",
    },
]


def seed(db) -> int:
    """Insert the starter passages unless English content already exists"""
    existing = db.query(Paragraph).filter(Paragraph.language == Language.ENGLISH.value).count()
    if existing > 0:
        logger.info(f"Found {existing} existing English paragraphs. Skipping seed.")
        return 0

    for order, data in enumerate(ENGLISH_PARAGRAPHS):
        db.add(Paragraph(
            title=data["title"],
            text=data["text"],
            language=Language.ENGLISH.value,
            category=data["category"].value,
            access_type=data["access_type"].value,
            is_free=data["access_type"] != AccessType.PAID,
            order=order,
            published=True,
            solved_count=data["solved_count"],
        ))
    db.commit()
    logger.info(f"Inserted {len(ENGLISH_PARAGRAPHS)} English paragraphs.")
    return len(ENGLISH_PARAGRAPHS)


def main():
    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed(db)
    except Exception:
        logger.exception("Seed failed")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
