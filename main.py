import logging
import os
import time
from contextlib import asynccontextmanager
from typing import List, Literal, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import Settings
from database import attached_db, connect, get_db, prepare_indexes, to_public
from errors import AuthenticationError, InvalidCredentials, ValidationError, install_error_handlers
from notifications import Notifier, build_notifier, send_order_confirmation, send_welcome_email
from permissions import Identity, require_admin, require_order_manager, require_owner_or_admin, require_seller
from query import QueryPlan, build_listing_query, paginate, page_window
from ratelimit import RollingWindowLimiter, auth_rate_limit, general_rate_limit
from repositories import (
    ListingRepository,
    OrderRepository,
    ReviewRepository,
    UserRepository,
    average_rating,
    stats,
)
from schemas import (
    PHONE_PATTERN,
    ROLES,
    Category,
    ListingStatus,
    OrderStatus,
    Role,
    Listing as ListingSchema,
    Order as OrderSchema,
    Review as ReviewSchema,
    User as UserSchema,
    can_transition,
    lower_email,
)
from security import TokenService, burn_password_check, hash_password, verify_password

logger = logging.getLogger("pawmart")

settings = Settings.from_env()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def configure(app: FastAPI, settings: Settings, db: Optional[Database] = None, notifier: Optional[Notifier] = None) -> None:
    """Attach the store handle and per-process services to app.state."""
    app.state.settings = settings
    app.state.db = db if db is not None else connect(settings)
    app.state.tokens = TokenService(settings.jwt_secret, settings.jwt_expires_days)
    app.state.notifier = notifier or build_notifier(settings.resend_api_key, settings.email_from)
    app.state.limiter = RollingWindowLimiter(settings.rate_limit_max, settings.rate_limit_window_seconds)
    app.state.auth_limiter = RollingWindowLimiter(settings.auth_rate_limit_max, settings.rate_limit_window_seconds)
    app.state.started_at = time.monotonic()
    app.state.indexes_ready = app.state.db is None or prepare_indexes(app.state.db)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "settings", None) is None:
        configure(app, settings)
    yield


app = FastAPI(title="PawMart API", version="1.0.0", lifespan=lifespan, dependencies=[Depends(general_rate_limit)])

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)


# Dependencies
def optional_db(request: Request) -> Optional[Database]:
    return attached_db(request)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def current_identity(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: Database = Depends(get_db),
) -> Identity:
    token = (authorization or "").replace("Bearer ", "", 1).strip()
    if not token:
        raise AuthenticationError("Access denied. No token provided.")
    identity = request.app.state.tokens.verify(token)
    # Role comes from the stored record so admin role changes apply immediately.
    user = db.user.find_one({"email": identity.email}, {"role": 1})
    if not user or str(user["_id"]) != identity.user_id:
        raise AuthenticationError("Access denied. Account no longer exists.")
    return Identity(user_id=identity.user_id, email=identity.email, role=user.get("role", "buyer"))


def listing_params(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[str] = Query(None, alias="minPrice"),
    max_price: Optional[str] = Query(None, alias="maxPrice"),
    location: Optional[str] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
) -> dict:
    return {
        "page": page,
        "limit": limit,
        "category": category,
        "search": search,
        "minPrice": min_price,
        "maxPrice": max_price,
        "location": location,
        "sortBy": sort_by,
        "sortOrder": sort_order,
    }


def listing_plan(params: dict, settings: Settings, **kwargs) -> QueryPlan:
    return build_listing_query(
        params,
        default_limit=settings.default_page_size,
        max_limit=settings.max_page_size,
        **kwargs,
    )


def page_response(items: List[dict], plan: QueryPlan, total: int, key: str = "listings") -> dict:
    return {key: items, "pagination": plan.pagination(total)}


def auth_response(request: Request, user: dict) -> dict:
    return {"token": request.app.state.tokens.issue(user), "user": to_public(user)}


@app.get("/")
def read_root():
    return {"message": "PawMart backend running"}


@app.get("/health")
def health(request: Request):
    db = optional_db(request)
    response = {
        "status": "ok",
        "database": "not configured",
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
    }
    if db is not None:
        try:
            db.list_collection_names()
            response["database"] = "connected"
        except PyMongoError as e:
            logger.warning("Health check could not reach the database: %s", e)
            response["database"] = "disconnected"
            response["status"] = "degraded"
    return response


# Auth Endpoints
class RegisterBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Literal["buyer", "seller"] = "buyer"
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[str] = Field(None, max_length=200)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return lower_email(value)


class LoginBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return lower_email(value)


class ProfileUpdateBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[str] = Field(None, max_length=200)


@app.post("/auth/register", status_code=201, dependencies=[Depends(auth_rate_limit)])
def register(
    body: RegisterBody,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: Notifier = Depends(get_notifier),
):
    user = UserSchema(
        name=body.name,
        email=body.email,
        password_hash=hash_password(body.password, settings.bcrypt_rounds),
        role=body.role,
        phone=body.phone,
        address=body.address,
        is_verified=False,
    )
    created = UserRepository(db).create(user)
    logger.info("Registered %s as %s", created["email"], created["role"])
    background_tasks.add_task(send_welcome_email, notifier, to_public(created))
    return auth_response(request, created)


@app.post("/auth/login", dependencies=[Depends(auth_rate_limit)])
def login(
    body: LoginBody,
    request: Request,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = UserRepository(db).find_by_email(body.email)
    if not user:
        burn_password_check(body.password, settings.bcrypt_rounds)
        raise InvalidCredentials()
    if not verify_password(body.password, user.get("password_hash", "")):
        raise InvalidCredentials()
    return auth_response(request, user)


@app.get("/auth/profile")
def get_profile(identity: Identity = Depends(current_identity), db: Database = Depends(get_db)):
    return to_public(UserRepository(db).get(identity.user_id))


@app.put("/auth/profile")
def update_profile(
    body: ProfileUpdateBody,
    identity: Identity = Depends(current_identity),
    db: Database = Depends(get_db),
):
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise ValidationError(["body: no fields to update"])
    return to_public(UserRepository(db).update_profile(identity.user_id, changes))


# Listings Endpoints
class CreateListingBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=2, max_length=100)
    category: Category
    price: float = Field(..., gt=0)
    location: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=10, max_length=1000)
    image: HttpUrl
    breed: Optional[str] = Field(None, max_length=50)
    age: Optional[str] = Field(None, max_length=20)
    gender: Optional[Literal["Male", "Female"]] = None
    vaccinated: Optional[bool] = None
    trained: Optional[bool] = None


class UpdateListingBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    category: Optional[Category] = None
    price: Optional[float] = Field(None, gt=0)
    location: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = Field(None, min_length=10, max_length=1000)
    image: Optional[HttpUrl] = None
    breed: Optional[str] = Field(None, max_length=50)
    age: Optional[str] = Field(None, max_length=20)
    gender: Optional[Literal["Male", "Female"]] = None
    vaccinated: Optional[bool] = None
    trained: Optional[bool] = None
    status: Optional[ListingStatus] = None


@app.get("/listings")
def list_listings(
    params: dict = Depends(listing_params),
    db: Optional[Database] = Depends(optional_db),
    settings: Settings = Depends(get_settings),
):
    plan = listing_plan(params, settings, base_filter={"status": "active"})
    if db is None:
        logger.warning("Listing index served empty: database not configured")
        return page_response([], plan, 0)
    try:
        items, total = ListingRepository(db).page(plan)
    except PyMongoError as e:
        logger.warning("Listing index served empty after store error: %s", e)
        return page_response([], plan, 0)
    return page_response(items, plan, total)


@app.get("/listings/category/{category}")
def listings_by_category(
    category: str,
    params: dict = Depends(listing_params),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    plan = listing_plan(dict(params, category=category), settings, base_filter={"status": "active"})
    items, total = ListingRepository(db).page(plan)
    return page_response(items, plan, total)


@app.get("/listings/user/{email}")
def listings_by_user(
    email: str,
    params: dict = Depends(listing_params),
    identity: Identity = Depends(current_identity),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    email = lower_email(email)
    require_owner_or_admin(identity, email)
    plan = listing_plan(params, settings, base_filter={"email": email})
    items, total = ListingRepository(db).page(plan)
    return page_response(items, plan, total)


@app.get("/listings/{listing_id}")
def get_listing(listing_id: str, db: Database = Depends(get_db)):
    listing = to_public(ListingRepository(db).get_and_count_view(listing_id))
    reviews = ReviewRepository(db).for_listing(listing["id"])
    listing["reviews"] = reviews
    listing["average_rating"] = average_rating(r["rating"] for r in reviews)
    listing["review_count"] = len(reviews)
    return listing


@app.post("/listings", status_code=201)
def create_listing(
    body: CreateListingBody,
    identity: Identity = Depends(current_identity),
    db: Database = Depends(get_db),
):
    require_seller(identity)
    listing = ListingSchema(
        **body.model_dump(mode="json", exclude_none=True),
        email=identity.email,
        user_id=identity.user_id,
        status="active",
        views=0,
    )
    created = ListingRepository(db).create(listing)
    logger.info("Listing %s created by %s", created["_id"], identity.email)
    return to_public(created)


@app.put("/listings/{listing_id}")
def update_listing(
    listing_id: str,
    body: UpdateListingBody,
    identity: Identity = Depends(current_identity),
    db: Database = Depends(get_db),
):
    listings = ListingRepository(db)
    listing = listings.get(listing_id)
    require_owner_or_admin(identity, listing.get("email"))
    changes = body.model_dump(mode="json", exclude_none=True)
    if not changes:
        raise ValidationError(["body: no fields to update"])
    return to_public(listings.update(listing_id, changes))


@app.delete("/listings/{listing_id}")
def delete_listing(
    listing_id: str,
    identity: Identity = Depends(current_identity),
    db: Database = Depends(get_db),
):
    listings = ListingRepository(db)
    listing = listings.get(listing_id)
    require_owner_or_admin(identity, listing.get("email"))
    listings.delete(listing_id)
    logger.info("Listing %s deleted by %s", listing_id, identity.email)
    return {"message": "Listing deleted successfully"}


@app.get("/recent-listings")
def recent_listings(
    limit: Optional[str] = None,
    db: Optional[Database] = Depends(optional_db),
    settings: Settings = Depends(get_settings),
):
    _, limit = page_window({"limit": limit}, settings.recent_listings_limit, settings.max_page_size)
    if db is None:
        logger.warning("Recent listings served empty: database not configured")
        return []
    try:
        return ListingRepository(db).recent(limit)
    except PyMongoError as e:
        logger.warning("Recent listings served empty after store error: %s", e)
        return []


@app.get("/search")
def search_listings(
    q: Optional[str] = None,
    params: dict = Depends(listing_params),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    if not q or not q.strip():
        raise ValidationError(["q: search query is required"], message="Search query is required")
    plan = listing_plan(
        dict(params, search=q),
        settings,
        search_fields=("name", "description", "category"),
        base_filter={"status": "active"},
    )
    items, total = ListingRepository(db).page(plan)
    return page_response(items, plan, total)


# Orders
class CreateOrderBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    listing_id: str
    buyer_name: str = Field(..., min_length=2, max_length=50)
    quantity: int = Field(1, ge=1)
    address: str = Field(..., min_length=10, max_length=200)
    phone: str = Field(..., pattern=PHONE_PATTERN)


class OrderStatusBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: OrderStatus


@app.post("/orders", status_code=201)
def create_order(
    body: CreateOrderBody,
    background_tasks: BackgroundTasks,
    identity: Identity = Depends(current_identity),
    db: Database = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    listing = ListingRepository(db).get(body.listing_id)
    if listing.get("status") != "active":
        raise ValidationError(["listing_id: listing is not available"])
    price = float(listing["price"])
    order = OrderSchema(
        buyer_email=identity.email,
        buyer_name=body.buyer_name,
        listing_id=str(listing["_id"]),
        seller_id=listing["email"],
        product_name=listing["name"],
        price=price,
        quantity=body.quantity,
        total=round(price * body.quantity, 2),
        address=body.address,
        phone=body.phone,
        status="pending",
    )
    created = to_public(OrderRepository(db).create(order))
    logger.info("Order %s placed by %s", created["id"], identity.email)
    background_tasks.add_task(send_order_confirmation, notifier, created)
    return created


@app.get("/orders/{email}")
def list_user_orders(
    email: str,
    identity: Identity = Depends(current_identity),
    db: Database = Depends(get_db),
):
    email = lower_email(email)
    require_owner_or_admin(identity, email)
    return OrderRepository(db).for_buyer(email)


@app.put("/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    body: OrderStatusBody,
    identity: Identity = Depends(current_identity),
    db: Database = Depends(get_db),
):
    orders = OrderRepository(db)
    order = orders.get(order_id)
    require_order_manager(identity, order)
    if not can_transition(order["status"], body.status):
        raise ValidationError(
            [f"status: cannot change from {order['status']} to {body.status}"],
            message="Invalid status transition",
        )
    updated = orders.update_status(order_id, order["status"], body.status)
    logger.info("Order %s moved %s -> %s by %s", order_id, order["status"], body.status, identity.email)
    return to_public(updated)


# Reviews
class CreateReviewBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    listing_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=5, max_length=500)


@app.post("/reviews", status_code=201)
def create_review(
    body: CreateReviewBody,
    identity: Identity = Depends(current_identity),
    db: Database = Depends(get_db),
):
    listing = ListingRepository(db).get(body.listing_id)
    review = ReviewSchema(
        listing_id=str(listing["_id"]),
        buyer_email=identity.email,
        rating=body.rating,
        comment=body.comment,
    )
    return to_public(ReviewRepository(db).create(review))


@app.get("/reviews/{listing_id}")
def list_reviews(listing_id: str, db: Database = Depends(get_db)):
    listing = ListingRepository(db).get(listing_id)
    reviews = ReviewRepository(db).for_listing(str(listing["_id"]))
    return {
        "reviews": reviews,
        "average_rating": average_rating(r["rating"] for r in reviews),
        "review_count": len(reviews),
    }


# Admin
class RoleBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Role


@app.get("/admin/users")
def admin_list_users(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    role: Optional[str] = None,
    identity: Identity = Depends(current_identity),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    require_admin(identity)
    query = {}
    if role:
        if role not in ROLES:
            raise ValidationError([f"role: must be one of {', '.join(ROLES)}"])
        query["role"] = role
    page, limit = page_window({"page": page, "limit": limit}, settings.default_page_size, settings.max_page_size)
    plan = QueryPlan(filter=query, sort=[("created_at", DESCENDING), ("_id", DESCENDING)], page=page, limit=limit)
    users, total = UserRepository(db).page(plan)
    return {"users": users, "pagination": paginate(page, limit, total)}


@app.get("/admin/stats")
def admin_stats(identity: Identity = Depends(current_identity), db: Database = Depends(get_db)):
    require_admin(identity)
    return stats(db)


@app.put("/admin/users/{user_id}/role")
def admin_change_role(
    user_id: str,
    body: RoleBody,
    identity: Identity = Depends(current_identity),
    db: Database = Depends(get_db),
):
    require_admin(identity)
    if user_id == identity.user_id and body.role != "admin":
        raise ValidationError(["role: admins cannot remove their own admin role"])
    updated = UserRepository(db).set_role(user_id, body.role)
    logger.info("Role of %s set to %s by %s", updated["email"], body.role, identity.email)
    return to_public(updated)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
