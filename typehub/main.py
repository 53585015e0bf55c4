from fastapi import FastAPI, Depends, Response
from fastapi.middleware.cors import CORSMiddleware
from typing import Dict, Optional
from contextlib import asynccontextmanager
from sqlalchemy import or_
from sqlalchemy.orm import Session
from pydantic.alias_generators import to_camel
import logging

from typehub import config
from typehub.access import active_product_ids, check_access, is_active
from typehub.database import Base, engine, get_db
from typehub.entitlements import PRODUCTS, bundle_rules, get_product
from typehub.errors import InvalidInput, NotFound, Unauthorized, register_exception_handlers
from typehub.leaderboard import MIN_ACCURACY_LEADERBOARD, build_leaderboard, history_stats
from typehub.models.auth import AdminLogin, GoogleLogin
from typehub.models.enums import Category, Language, SubmissionSort
from typehub.models.paragraphs import (
    ParagraphCreate,
    ParagraphFilter,
    ParagraphUpdate,
    SubmissionCreate,
    SubscriptionsUpdate,
    UserUpdate,
    published_condition,
)
from typehub.models.payments import CreateOrderRequest, PaymentConfirmation
from typehub.models.schema import Paragraph, Submission, Subscription, User
from typehub.orders import OrderStore, get_order_store
from typehub.payments import (
    ADMIN_GRANT_ORDER_ID,
    PaymentGateway,
    create_order,
    get_payment_gateway,
    grant_subscription,
    settle,
)
from typehub.scoring import ranking_score
from typehub.sessions import (
    GoogleIdentityProvider,
    authenticate_admin,
    create_admin_token,
    get_identity_provider,
    login_with_identity,
    optional_user,
    require_admin,
    require_user,
    set_session_cookie,
)
from typehub.utils import clamp_pagination, total_pages, utcnow

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

PARAGRAPHS_MAX_LIMIT = 24
PARAGRAPHS_DEFAULT_LIMIT = 24
ADMIN_MAX_LIMIT = 100
ADMIN_DEFAULT_LIMIT = 20

# Paragraph columns that may not be cleared through an update
REQUIRED_PARAGRAPH_FIELDS = ("title", "text", "language", "category", "is_free", "order")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI application startup and shutdown events"""
    # Startup: create tables for local development databases
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.warning(f"Could not create database tables: {e}")

    yield  # Server is running


# Initialize FastAPI app with optional lifespan
if config.IS_SERVERLESS:
    # In serverless, lifespan events may not work reliably
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.warning(f"Could not create database tables: {e}")
    app = FastAPI(
        title="TypeHub API",
        lifespan=None,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )
else:
    app = FastAPI(title="TypeHub API", lifespan=lifespan)

# Credentials (cookies) require an explicit origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.CLIENT_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

register_exception_handlers(app)


# --- Serialization helpers ------------------------------------------------

def serialize_user(user: User) -> Dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "avatarUrl": user.avatar_url,
        "isPaid": bool(user.is_paid),
    }


def serialize_paragraph(paragraph: Paragraph, include_text: bool = True) -> Dict:
    data = {
        "id": paragraph.id,
        "title": paragraph.title,
        "language": paragraph.language,
        "category": paragraph.category,
        "accessType": paragraph.access_type,
        "isFree": paragraph.is_free,
        "order": paragraph.order,
        "published": paragraph.published,
        "solvedCount": paragraph.solved_count,
        "createdAt": paragraph.created_at,
    }
    if include_text:
        data["text"] = paragraph.text
    return data


def get_visible_paragraph(db: Session, paragraph_id: str) -> Paragraph:
    paragraph = (
        db.query(Paragraph)
        .filter(Paragraph.id == paragraph_id, published_condition())
        .first()
    )
    if paragraph is None:
        raise NotFound("Paragraph not found.")
    return paragraph


# --- Health -------------------------------------------------------------------

@app.get("/health")
def health():
    return {"status": "ok"}


# --- Auth -------------------------------------------------------------------

@app.post("/auth/google")
def google_login(
    body: GoogleLogin,
    response: Response,
    db: Session = Depends(get_db),
    provider: GoogleIdentityProvider = Depends(get_identity_provider),
):
    """Exchange a Google ID token for a session. Earlier sessions stop working."""
    identity = provider.resolve(body.credential)
    user, token = login_with_identity(db, identity)
    set_session_cookie(response, config.AUTH_COOKIE_NAME, token, 60 * 60 * 24 * config.ACCESS_TOKEN_EXPIRE_DAYS)
    return {"token": token, "user": serialize_user(user)}


@app.get("/auth/me")
def me(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return {"user": serialize_user(user), "subscriptions": active_product_ids(db, user)}


@app.post("/auth/logout")
def logout():
    response = Response(status_code=204)
    response.delete_cookie(config.AUTH_COOKIE_NAME)
    return response


# --- Paragraphs -------------------------------------------------------------

@app.get("/paragraphs")
def list_paragraphs(
    language: Optional[str] = None,
    category: Optional[str] = None,
    price: Optional[str] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    user: Optional[User] = Depends(optional_user),
    db: Session = Depends(get_db),
):
    paragraph_filter = ParagraphFilter.from_query(language, category, price)
    page, limit = clamp_pagination(page, limit, PARAGRAPHS_DEFAULT_LIMIT, PARAGRAPHS_MAX_LIMIT)

    query = paragraph_filter.apply(db.query(Paragraph))
    total = query.count()
    paragraphs = (
        query.order_by(Paragraph.order.asc(), Paragraph.title.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    solved_ids = set()
    if user is not None and paragraphs:
        rows = (
            db.query(Submission.paragraph_id)
            .filter(
                Submission.user_id == user.id,
                Submission.paragraph_id.in_([p.id for p in paragraphs]),
            )
            .distinct()
            .all()
        )
        solved_ids = {row.paragraph_id for row in rows}

    items = []
    for paragraph in paragraphs:
        item = serialize_paragraph(paragraph, include_text=False)
        item["solvedByUser"] = paragraph.id in solved_ids
        items.append(item)

    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": total_pages(total, limit),
    }


@app.get("/paragraphs/{paragraph_id}")
def get_paragraph(
    paragraph_id: str,
    user: Optional[User] = Depends(optional_user),
    db: Session = Depends(get_db),
):
    paragraph = get_visible_paragraph(db, paragraph_id)
    check_access(db, user, paragraph)
    return serialize_paragraph(paragraph)


@app.get("/paragraphs/{paragraph_id}/submissions/leaderboard")
def get_leaderboard(
    paragraph_id: str,
    user: Optional[User] = Depends(optional_user),
    db: Session = Depends(get_db),
):
    get_visible_paragraph(db, paragraph_id)
    candidates = (
        db.query(Submission)
        .filter(
            Submission.paragraph_id == paragraph_id,
            Submission.accuracy >= MIN_ACCURACY_LEADERBOARD,
        )
        .all()
    )
    user_ids = {s.user_id for s in candidates if s.user_id}
    names = {}
    if user_ids:
        names = {
            row.id: row.name
            for row in db.query(User.id, User.name).filter(User.id.in_(user_ids)).all()
        }
    return build_leaderboard(candidates, names, viewer_id=user.id if user else None)


@app.get("/paragraphs/{paragraph_id}/submissions/history")
def get_history(
    paragraph_id: str,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    get_visible_paragraph(db, paragraph_id)
    submissions = (
        db.query(Submission)
        .filter(Submission.paragraph_id == paragraph_id, Submission.user_id == user.id)
        .order_by(Submission.created_at.desc())
        .all()
    )
    return {
        "submissions": [
            {
                "id": s.id,
                "timeTakenSeconds": s.time_taken_seconds,
                "wpm": s.wpm,
                "accuracy": s.accuracy,
                "correctWordsCount": s.correct_words_count,
                "incorrectWordsCount": s.incorrect_words_count,
                "rankingScore": s.ranking_score,
                "createdAt": s.created_at,
            }
            for s in submissions
        ],
        "stats": history_stats(submissions),
    }


@app.post("/paragraphs/{paragraph_id}/submissions", status_code=201)
def create_submission(
    paragraph_id: str,
    payload: SubmissionCreate,
    user: Optional[User] = Depends(optional_user),
    db: Session = Depends(get_db),
):
    paragraph = get_visible_paragraph(db, paragraph_id)
    check_access(db, user, paragraph)

    first_attempt = True
    if user is not None:
        first_attempt = (
            db.query(Submission)
            .filter(Submission.paragraph_id == paragraph.id, Submission.user_id == user.id)
            .first()
        ) is None

    score = ranking_score(payload.words_typed, payload.total_passage_words, payload.accuracy, payload.wpm)
    submission = Submission(
        paragraph_id=paragraph.id,
        user_id=user.id if user else None,
        time_taken_seconds=payload.time_taken_seconds,
        accuracy=payload.accuracy,
        total_keystrokes=payload.total_keystrokes,
        backspace_count=payload.backspace_count,
        words_typed=payload.words_typed,
        wpm=payload.wpm,
        kpm=payload.kpm,
        incorrect_words_count=payload.incorrect_words_count,
        incorrect_words=payload.incorrect_words,
        correct_words_count=payload.correct_words_count,
        user_input=payload.user_input,
        omitted_words_count=payload.omitted_words_count,
        total_passage_words=payload.total_passage_words,
        ranking_score=score,
    )
    db.add(submission)
    if first_attempt:
        db.query(Paragraph).filter(Paragraph.id == paragraph.id).update(
            {Paragraph.solved_count: Paragraph.solved_count + 1},
            synchronize_session=False,
        )
    db.commit()

    logger.info(f"Submission {submission.id} on paragraph {paragraph.id} (score {score})")
    return {"id": submission.id, "rankingScore": score}


# --- Payments ---------------------------------------------------------------

@app.get("/payments/products")
def list_products():
    return {
        "products": [p.to_dict() for p in PRODUCTS],
        "bundleRules": bundle_rules(),
    }


@app.post("/payments/create-order", status_code=201)
def create_payment_order(
    body: CreateOrderRequest,
    user: User = Depends(require_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    store: OrderStore = Depends(get_order_store),
):
    return create_order(user, body.product_ids, gateway, store)


@app.post("/payments/verify")
def verify_payment(
    body: PaymentConfirmation,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
    store: OrderStore = Depends(get_order_store),
):
    settle(db, user, body, store)
    return {
        "success": True,
        "user": serialize_user(user),
        "subscriptions": active_product_ids(db, user),
    }


# --- Admin ------------------------------------------------------------------

def get_user_or_404(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFound("User not found")
    return user


def get_paragraph_or_404(db: Session, paragraph_id: str) -> Paragraph:
    paragraph = db.query(Paragraph).filter(Paragraph.id == paragraph_id).first()
    if paragraph is None:
        raise NotFound("Paragraph not found")
    return paragraph


def admin_user_dict(db: Session, user: User) -> Dict:
    data = serialize_user(user)
    data.update({
        "googleId": user.google_id,
        "sessionVersion": user.session_version,
        "createdAt": user.created_at,
        "submissionCount": db.query(Submission).filter(Submission.user_id == user.id).count(),
    })
    return data


@app.post("/admin/login")
def admin_login(body: AdminLogin, response: Response):
    if not authenticate_admin(body.username, body.password):
        raise Unauthorized("Invalid credentials")
    token = create_admin_token(body.username)
    set_session_cookie(response, config.ADMIN_COOKIE_NAME, token, 60 * 60 * config.ADMIN_TOKEN_EXPIRE_HOURS)
    return {"token": token, "username": body.username}


@app.post("/admin/logout")
def admin_logout():
    response = Response(status_code=204)
    response.delete_cookie(config.ADMIN_COOKIE_NAME)
    return response


@app.get("/admin/me")
def admin_me(admin: Dict = Depends(require_admin)):
    return {"username": admin.get("username"), "role": "admin"}


@app.get("/admin/users")
def admin_list_users(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    search: Optional[str] = None,
    isPaid: Optional[str] = None,
    admin: Dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    page, limit = clamp_pagination(page, limit, ADMIN_DEFAULT_LIMIT, ADMIN_MAX_LIMIT)
    query = db.query(User)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    if isPaid == "true":
        query = query.filter(User.is_paid.is_(True))
    elif isPaid == "false":
        query = query.filter(User.is_paid.is_(False))

    total = query.count()
    users = query.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [admin_user_dict(db, u) for u in users],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": total_pages(total, limit),
    }


@app.get("/admin/users/{user_id}")
def admin_get_user(user_id: str, admin: Dict = Depends(require_admin), db: Session = Depends(get_db)):
    return admin_user_dict(db, get_user_or_404(db, user_id))


@app.put("/admin/users/{user_id}")
def admin_update_user(
    user_id: str,
    body: UserUpdate,
    admin: Dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = get_user_or_404(db, user_id)
    update = body.model_dump(exclude_unset=True)
    if "name" in update:
        user.name = update["name"]
    if "email" in update:
        user.email = update["email"]
    if "is_paid" in update:
        user.is_paid = update["is_paid"]
    db.commit()
    db.refresh(user)
    return admin_user_dict(db, user)


@app.delete("/admin/users/{user_id}")
def admin_delete_user(user_id: str, admin: Dict = Depends(require_admin), db: Session = Depends(get_db)):
    user = get_user_or_404(db, user_id)
    # Best-effort cascade, committed step by step
    db.query(Submission).filter(Submission.user_id == user.id).delete(synchronize_session=False)
    db.commit()
    db.query(Subscription).filter(Subscription.user_id == user.id).delete(synchronize_session=False)
    db.commit()
    db.delete(user)
    db.commit()
    logger.info(f"Admin {admin.get('username')} deleted user {user_id}")
    return Response(status_code=204)


@app.get("/admin/users/{user_id}/subscriptions")
def admin_get_subscriptions(user_id: str, admin: Dict = Depends(require_admin), db: Session = Depends(get_db)):
    user = get_user_or_404(db, user_id)
    subscriptions = db.query(Subscription).filter(Subscription.user_id == user.id).all()
    return {
        "productIds": [s.product_id for s in subscriptions],
        "adminGrantedProductIds": [s.product_id for s in subscriptions if s.order_id == ADMIN_GRANT_ORDER_ID],
        "subscriptions": [
            {
                "productId": s.product_id,
                "orderId": s.order_id,
                "paymentId": s.payment_id,
                "createdAt": s.created_at,
                "validUntil": s.valid_until,
            }
            for s in subscriptions
        ],
        "products": [p.to_dict() for p in PRODUCTS],
    }


@app.put("/admin/users/{user_id}/subscriptions")
def admin_set_subscriptions(
    user_id: str,
    body: SubscriptionsUpdate,
    admin: Dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Replace the admin-granted products. Purchased subscriptions are left alone."""
    user = get_user_or_404(db, user_id)
    to_grant = [pid for pid in dict.fromkeys(body.product_ids) if get_product(pid) is not None]

    db.query(Subscription).filter(
        Subscription.user_id == user.id,
        Subscription.order_id == ADMIN_GRANT_ORDER_ID,
    ).delete(synchronize_session=False)
    now = utcnow()
    for product_id in to_grant:
        held = (
            db.query(Subscription)
            .filter(Subscription.user_id == user.id, Subscription.product_id == product_id)
            .all()
        )
        # lapsed purchases are replaced by the grant
        if not any(is_active(sub, now) for sub in held):
            grant_subscription(db, user.id, product_id, ADMIN_GRANT_ORDER_ID, None, None)
    db.commit()

    rows = db.query(Subscription.product_id).filter(Subscription.user_id == user.id).all()
    return {"productIds": [row.product_id for row in rows]}


@app.get("/admin/paragraphs")
def admin_list_paragraphs(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    language: Optional[Language] = None,
    category: Optional[Category] = None,
    admin: Dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    page, limit = clamp_pagination(page, limit, ADMIN_DEFAULT_LIMIT, ADMIN_MAX_LIMIT)
    paragraph_filter = ParagraphFilter(language=language, category=category, published_only=False)
    query = paragraph_filter.apply(db.query(Paragraph))
    total = query.count()
    paragraphs = (
        query.order_by(Paragraph.order.asc(), Paragraph.title.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": [serialize_paragraph(p) for p in paragraphs],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": total_pages(total, limit),
    }


@app.get("/admin/paragraphs/{paragraph_id}")
def admin_get_paragraph(paragraph_id: str, admin: Dict = Depends(require_admin), db: Session = Depends(get_db)):
    return serialize_paragraph(get_paragraph_or_404(db, paragraph_id))


@app.post("/admin/paragraphs", status_code=201)
def admin_create_paragraph(body: ParagraphCreate, admin: Dict = Depends(require_admin), db: Session = Depends(get_db)):
    paragraph = Paragraph(
        title=body.title,
        text=body.text,
        language=body.language.value,
        category=body.category.value,
        access_type=body.access_type.value if body.access_type else None,
        is_free=body.is_free,
        order=body.order,
        published=body.published,
        solved_count=0,
    )
    db.add(paragraph)
    db.commit()
    db.refresh(paragraph)
    return serialize_paragraph(paragraph)


@app.put("/admin/paragraphs/{paragraph_id}")
def admin_update_paragraph(
    paragraph_id: str,
    body: ParagraphUpdate,
    admin: Dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    paragraph = get_paragraph_or_404(db, paragraph_id)
    update = body.model_dump(exclude_unset=True)
    for field in REQUIRED_PARAGRAPH_FIELDS:
        if field in update and update[field] is None:
            raise InvalidInput(f"'{to_camel(field)}' cannot be null.")
    for field, value in update.items():
        if hasattr(value, "value"):
            value = value.value
        setattr(paragraph, field, value)
    db.commit()
    db.refresh(paragraph)
    return serialize_paragraph(paragraph)


@app.delete("/admin/paragraphs/{paragraph_id}")
def admin_delete_paragraph(paragraph_id: str, admin: Dict = Depends(require_admin), db: Session = Depends(get_db)):
    paragraph = get_paragraph_or_404(db, paragraph_id)
    db.query(Submission).filter(Submission.paragraph_id == paragraph.id).delete(synchronize_session=False)
    db.commit()
    db.delete(paragraph)
    db.commit()
    return Response(status_code=204)


@app.get("/admin/submissions")
def admin_list_submissions(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    paragraphId: Optional[str] = None,
    userId: Optional[str] = None,
    sortBy: SubmissionSort = SubmissionSort.CREATED_AT,
    admin: Dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    page, limit = clamp_pagination(page, limit, ADMIN_DEFAULT_LIMIT, ADMIN_MAX_LIMIT)
    query = db.query(Submission)
    if paragraphId:
        query = query.filter(Submission.paragraph_id == paragraphId)
    if userId:
        query = query.filter(Submission.user_id == userId)

    order = {
        SubmissionSort.TIME_TAKEN: Submission.time_taken_seconds.asc(),
        SubmissionSort.WPM: Submission.wpm.desc(),
        SubmissionSort.ACCURACY: Submission.accuracy.desc(),
        SubmissionSort.CREATED_AT: Submission.created_at.desc(),
    }[sortBy]

    total = query.count()
    submissions = query.order_by(order).offset((page - 1) * limit).limit(limit).all()
    items = []
    for s in submissions:
        items.append({
            "id": s.id,
            "paragraphId": s.paragraph_id,
            "paragraphTitle": s.paragraph.title if s.paragraph else None,
            "userId": s.user_id,
            "userName": s.user.name if s.user else None,
            "userEmail": s.user.email if s.user else None,
            "timeTakenSeconds": s.time_taken_seconds,
            "accuracy": s.accuracy,
            "wpm": s.wpm,
            "kpm": s.kpm,
            "wordsTyped": s.words_typed,
            "totalPassageWords": s.total_passage_words,
            "rankingScore": s.ranking_score,
            "createdAt": s.created_at,
        })
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": total_pages(total, limit),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
