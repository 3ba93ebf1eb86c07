"""
Collection access for users, listings, orders and reviews.

Each repository wraps one collection of an explicitly passed Database.
Ids cross this boundary as strings; documents come back through to_public.
"""
import math
from datetime import timedelta
from typing import Iterable, List, Optional, Tuple

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, parse_object_id, to_public, utcnow
from errors import Conflict, NotFound
from query import QueryPlan
from schemas import ORDER_STATUSES, ROLES, Listing, Order, Review, User


class UserRepository:
    def __init__(self, db: Database):
        self.collection = db.user
        self.db = db

    def create(self, user: User) -> dict:
        try:
            user_id = create_document(self.db, "user", user)
        except DuplicateKeyError:
            raise Conflict("User already exists with this email")
        return self.collection.find_one({"_id": parse_object_id(user_id)})

    def find_by_email(self, email: str) -> Optional[dict]:
        return self.collection.find_one({"email": email.strip().lower()})

    def get(self, user_id: str) -> dict:
        user = self.collection.find_one({"_id": parse_object_id(user_id)})
        if not user:
            raise NotFound("User not found")
        return user

    def update_profile(self, user_id: str, changes: dict) -> dict:
        changes = dict(changes, updated_at=utcnow())
        user = self.collection.find_one_and_update(
            {"_id": parse_object_id(user_id)},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if not user:
            raise NotFound("User not found")
        return user

    def set_role(self, user_id: str, role: str) -> dict:
        return self.update_profile(user_id, {"role": role})

    def page(self, plan: QueryPlan) -> Tuple[List[dict], int]:
        cursor = (
            self.collection.find(plan.filter, {"password_hash": 0})
            .sort(plan.sort)
            .skip(plan.skip)
            .limit(plan.limit)
        )
        total = self.collection.count_documents(plan.filter)
        return [to_public(d) for d in cursor], total


class ListingRepository:
    def __init__(self, db: Database):
        self.collection = db.listing
        self.db = db

    def page(self, plan: QueryPlan) -> Tuple[List[dict], int]:
        cursor = self.collection.find(plan.filter).sort(plan.sort).skip(plan.skip).limit(plan.limit)
        items = [to_public(d) for d in cursor]
        total = self.collection.count_documents(plan.filter)
        return items, total

    def recent(self, limit: int) -> List[dict]:
        cursor = (
            self.collection.find({"status": "active"})
            .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
            .limit(limit)
        )
        return [to_public(d) for d in cursor]

    def get(self, listing_id: str) -> dict:
        listing = self.collection.find_one({"_id": parse_object_id(listing_id)})
        if not listing:
            raise NotFound("Listing not found")
        return listing

    def get_and_count_view(self, listing_id: str) -> dict:
        listing = self.collection.find_one_and_update(
            {"_id": parse_object_id(listing_id)},
            {"$inc": {"views": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if not listing:
            raise NotFound("Listing not found")
        return listing

    def create(self, listing: Listing) -> dict:
        listing_id = create_document(self.db, "listing", listing)
        return self.collection.find_one({"_id": parse_object_id(listing_id)})

    def update(self, listing_id: str, changes: dict) -> dict:
        changes = dict(changes, updated_at=utcnow())
        listing = self.collection.find_one_and_update(
            {"_id": parse_object_id(listing_id)},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if not listing:
            raise NotFound("Listing not found")
        return listing

    def delete(self, listing_id: str) -> None:
        result = self.collection.delete_one({"_id": parse_object_id(listing_id)})
        if result.deleted_count == 0:
            raise NotFound("Listing not found")


class OrderRepository:
    def __init__(self, db: Database):
        self.collection = db.order
        self.db = db

    def create(self, order: Order) -> dict:
        order_id = create_document(self.db, "order", order)
        return self.collection.find_one({"_id": parse_object_id(order_id)})

    def get(self, order_id: str) -> dict:
        order = self.collection.find_one({"_id": parse_object_id(order_id)})
        if not order:
            raise NotFound("Order not found")
        return order

    def for_buyer(self, email: str) -> List[dict]:
        cursor = self.collection.find({"buyer_email": email.strip().lower()}).sort(
            [("created_at", DESCENDING), ("_id", DESCENDING)]
        )
        return [to_public(d) for d in cursor]

    def update_status(self, order_id: str, current: str, status: str) -> dict:
        # Matching on the current status keeps two concurrent updates from both applying.
        order = self.collection.find_one_and_update(
            {"_id": parse_object_id(order_id), "status": current},
            {"$set": {"status": status, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if not order:
            raise Conflict("Order status changed, reload and try again")
        return order


class ReviewRepository:
    def __init__(self, db: Database):
        self.collection = db.review
        self.db = db

    def create(self, review: Review) -> dict:
        # The unique (listing_id, buyer_email) index is the duplicate check.
        doc = review.model_dump(mode="json")
        doc["created_at"] = utcnow()
        try:
            result = self.collection.insert_one(doc)
        except DuplicateKeyError:
            raise Conflict("You have already reviewed this listing")
        return self.collection.find_one({"_id": result.inserted_id})

    def for_listing(self, listing_id: str) -> List[dict]:
        cursor = self.collection.find({"listing_id": listing_id}).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
        return [to_public(d) for d in cursor]


def average_rating(ratings: Iterable[int]) -> float:
    """Mean rating rounded half-up to one decimal; 0 when there are none."""
    ratings = list(ratings)
    if not ratings:
        return 0
    mean = sum(ratings) / len(ratings)
    return math.floor(mean * 10 + 0.5) / 10


def stats(db: Database) -> dict:
    # Naive UTC, the form BSON dates are stored in.
    since = (utcnow() - timedelta(days=30)).replace(tzinfo=None)
    recent = {"created_at": {"$gte": since}}
    return {
        "users": {
            "total": db.user.count_documents({}),
            "last30Days": db.user.count_documents(recent),
            "byRole": {role: db.user.count_documents({"role": role}) for role in ROLES},
        },
        "listings": {
            "total": db.listing.count_documents({}),
            "active": db.listing.count_documents({"status": "active"}),
            "last30Days": db.listing.count_documents(recent),
        },
        "orders": {
            "total": db.order.count_documents({}),
            "last30Days": db.order.count_documents(recent),
            "byStatus": {status: db.order.count_documents({"status": status}) for status in ORDER_STATUSES},
        },
        "reviews": {
            "total": db.review.count_documents({}),
        },
    }
