"""
Load sample users, listings, orders and reviews into the configured database.

    python seed.py

Existing documents in those collections are removed first. Every seeded
account uses the password SEED_PASSWORD.
"""
import logging
from datetime import timedelta

from pymongo.database import Database

from config import Settings
from database import connect, ensure_indexes, utcnow
from security import hash_password

logger = logging.getLogger(__name__)

SEED_PASSWORD = "pawmart123"

SAMPLE_USERS = [
    {"name": "John Doe", "email": "seller1@pawmart.app", "role": "seller"},
    {"name": "Jane Smith", "email": "seller2@pawmart.app", "role": "seller"},
    {"name": "Mike Johnson", "email": "seller3@pawmart.app", "role": "seller"},
    {"name": "Sarah Wilson", "email": "seller4@pawmart.app", "role": "seller"},
    {"name": "Alice Brown", "email": "alice@pawmart.app", "role": "buyer"},
    {"name": "Bob Davis", "email": "bob@pawmart.app", "role": "buyer"},
    {"name": "Admin User", "email": "admin@pawmart.app", "role": "admin"},
]

SAMPLE_LISTINGS = [
    {
        "name": "Golden Retriever Puppy",
        "category": "Pets",
        "price": 800.0,
        "location": "New York, NY",
        "description": "Beautiful, healthy Golden Retriever puppy. 8 weeks old, vaccinated, and ready for a loving home.",
        "image": "https://images.unsplash.com/photo-1552053831-71594a27632d?w=500&h=400&fit=crop",
        "email": "seller1@pawmart.app",
        "breed": "Golden Retriever",
        "age": "8 weeks",
        "gender": "Male",
        "vaccinated": True,
        "trained": False,
        "views": 45,
        "days_ago": 0,
    },
    {
        "name": "Persian Cat",
        "category": "Pets",
        "price": 600.0,
        "location": "Los Angeles, CA",
        "description": "Adorable Persian cat, 1 year old. Very friendly and well-behaved.",
        "image": "https://images.unsplash.com/photo-1574144611937-0df059b5ef3e?w=500&h=400&fit=crop",
        "email": "seller2@pawmart.app",
        "breed": "Persian",
        "age": "1 year",
        "gender": "Female",
        "vaccinated": True,
        "trained": True,
        "views": 32,
        "days_ago": 1,
    },
    {
        "name": "Premium Dog Food - 20kg",
        "category": "Pet Food",
        "price": 45.0,
        "location": "Chicago, IL",
        "description": "High-quality dry dog food suitable for all breeds. Rich in protein and essential nutrients.",
        "image": "https://images.unsplash.com/photo-1589924691995-400dc9ecc119?w=500&h=400&fit=crop",
        "email": "seller3@pawmart.app",
        "views": 28,
        "days_ago": 2,
    },
    {
        "name": "Cat Scratching Post",
        "category": "Accessories",
        "price": 35.0,
        "location": "Miami, FL",
        "description": "Tall scratching post perfect for cats. Helps keep claws healthy and furniture safe.",
        "image": "https://images.unsplash.com/photo-1545249390-6bdfa286032f?w=500&h=400&fit=crop",
        "email": "seller4@pawmart.app",
        "views": 19,
        "days_ago": 3,
    },
    {
        "name": "Dog Shampoo & Conditioner Set",
        "category": "Pet Care Products",
        "price": 25.0,
        "location": "Seattle, WA",
        "description": "Natural, gentle shampoo and conditioner set for dogs. Suitable for sensitive skin.",
        "image": "https://images.unsplash.com/photo-1601758228041-f3b2795255f1?w=500&h=400&fit=crop",
        "email": "seller1@pawmart.app",
        "views": 15,
        "days_ago": 4,
    },
    {
        "name": "Labrador Mix Puppy",
        "category": "Pets",
        "price": 400.0,
        "location": "Austin, TX",
        "description": "Energetic and friendly Labrador mix puppy. 10 weeks old, loves to play and great with children.",
        "image": "https://images.unsplash.com/photo-1587300003388-59208cc962cb?w=500&h=400&fit=crop",
        "email": "seller2@pawmart.app",
        "breed": "Labrador Mix",
        "age": "10 weeks",
        "gender": "Female",
        "vaccinated": True,
        "trained": False,
        "views": 67,
        "days_ago": 5,
    },
]

SAMPLE_ORDERS = [
    {
        "listing": "Golden Retriever Puppy",
        "buyer_email": "alice@pawmart.app",
        "buyer_name": "Alice Brown",
        "quantity": 1,
        "address": "123 Main St, Boston, MA 02101",
        "phone": "5550123456",
        "status": "delivered",
        "days_ago": 7,
    },
    {
        "listing": "Premium Dog Food - 20kg",
        "buyer_email": "bob@pawmart.app",
        "buyer_name": "Bob Davis",
        "quantity": 2,
        "address": "456 Oak Ave, Portland, OR 97201",
        "phone": "5550456789",
        "status": "shipped",
        "days_ago": 5,
    },
]

SAMPLE_REVIEWS = [
    {"listing": "Golden Retriever Puppy", "buyer_email": "alice@pawmart.app", "rating": 5, "comment": "Healthy, happy puppy. Great seller!"},
    {"listing": "Premium Dog Food - 20kg", "buyer_email": "bob@pawmart.app", "rating": 4, "comment": "My dogs love it, fast delivery."},
]


def seed_database(db: Database, rounds: int = 12) -> dict:
    for name in ("user", "listing", "order", "review"):
        db[name].delete_many({})
    ensure_indexes(db)

    now = utcnow()
    password_hash = hash_password(SEED_PASSWORD, rounds)
    users = []
    emails_to_ids = {}
    for user in SAMPLE_USERS:
        doc = dict(user, password_hash=password_hash, is_verified=True, created_at=now - timedelta(days=30), updated_at=now)
        users.append(doc)
    result = db.user.insert_many(users)
    for doc, user_id in zip(users, result.inserted_ids):
        emails_to_ids[doc["email"]] = str(user_id)

    listings = {}
    for sample in SAMPLE_LISTINGS:
        doc = {k: v for k, v in sample.items() if k != "days_ago"}
        created = now - timedelta(days=sample["days_ago"])
        doc.update(user_id=emails_to_ids[doc["email"]], status="active", created_at=created, updated_at=created)
        listings[doc["name"]] = db.listing.insert_one(doc).inserted_id

    for sample in SAMPLE_ORDERS:
        listing = db.listing.find_one({"_id": listings[sample["listing"]]})
        created = now - timedelta(days=sample["days_ago"])
        db.order.insert_one({
            "buyer_email": sample["buyer_email"],
            "buyer_name": sample["buyer_name"],
            "listing_id": str(listing["_id"]),
            "seller_id": listing["email"],
            "product_name": listing["name"],
            "price": listing["price"],
            "quantity": sample["quantity"],
            "total": round(listing["price"] * sample["quantity"], 2),
            "address": sample["address"],
            "phone": sample["phone"],
            "status": sample["status"],
            "created_at": created,
            "updated_at": now,
        })

    for sample in SAMPLE_REVIEWS:
        db.review.insert_one({
            "listing_id": str(listings[sample["listing"]]),
            "buyer_email": sample["buyer_email"],
            "rating": sample["rating"],
            "comment": sample["comment"],
            "created_at": now,
        })

    counts = {
        "users": len(SAMPLE_USERS),
        "listings": len(SAMPLE_LISTINGS),
        "orders": len(SAMPLE_ORDERS),
        "reviews": len(SAMPLE_REVIEWS),
    }
    logger.info("Seeded %s", counts)
    return counts


if __name__ == "__main__":
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)
    db = connect(settings)
    if db is None:
        raise SystemExit("DATABASE_URL is not set")
    seed_database(db, settings.bcrypt_rounds)
