from bson import ObjectId

from conftest import auth, listing_payload, register


def ids(res):
    return {item["id"] for item in res.json()["listings"]}


def test_create_listing_as_seller(client, create_listing, db):
    listing = create_listing()
    assert listing["email"] == "seller@pawmart.io"
    assert listing["status"] == "active"
    assert listing["views"] == 0
    assert listing["image"] == "https://images.example.org/puppy.jpg"
    assert db.listing.count_documents({}) == 1


def test_buyer_cannot_create_listing(client, buyer_token, db):
    res = client.post("/listings", json=listing_payload(), headers=auth(buyer_token))
    assert res.status_code == 403
    assert db.listing.count_documents({}) == 0


def test_create_listing_requires_token(client):
    assert client.post("/listings", json=listing_payload()).status_code == 401


def test_owner_is_taken_from_token_not_body(client, seller_token):
    res = client.post("/listings", json=listing_payload(email="someone@pawmart.io"), headers=auth(seller_token))
    assert res.status_code == 400


def test_listing_validation(client, seller_token):
    res = client.post(
        "/listings",
        json=listing_payload(price=0, category="Reptiles", image="not a url"),
        headers=auth(seller_token),
    )
    assert res.status_code == 400
    details = res.json()["details"]
    assert any(d.startswith("price") for d in details)
    assert any(d.startswith("category") for d in details)
    assert any(d.startswith("image") for d in details)


def test_admin_role_change_applies_to_existing_token(client, buyer_token, db):
    db.user.update_one({"email": "buyer@pawmart.io"}, {"$set": {"role": "seller"}})
    res = client.post("/listings", json=listing_payload(), headers=auth(buyer_token))
    assert res.status_code == 201


def test_list_listings_paginates(client, create_listing):
    for i in range(5):
        create_listing(name=f"Puppy {i}")
    res = client.get("/listings", params={"page": 2, "limit": 2})
    assert res.status_code == 200
    body = res.json()
    assert len(body["listings"]) == 2
    assert body["pagination"] == {"currentPage": 2, "totalPages": 3, "totalItems": 5, "itemsPerPage": 2}


def test_list_listings_empty(client):
    body = client.get("/listings").json()
    assert body["listings"] == []
    assert body["pagination"]["totalPages"] == 0
    assert body["pagination"]["totalItems"] == 0


def test_huge_page_returns_empty_page(client, create_listing):
    create_listing()
    for path, params in (("/listings", {}), ("/search", {"q": "puppy"}), ("/listings/category/Pets", {})):
        res = client.get(path, params=dict(params, page="100000000000000000000"))
        assert res.status_code == 200
        assert res.json()["listings"] == []
        assert res.json()["pagination"]["totalItems"] == 1


def test_limit_is_capped(client, create_listing):
    create_listing()
    body = client.get("/listings", params={"limit": 10_000}).json()
    assert body["pagination"]["itemsPerPage"] == 100


def test_category_all_matches_no_category(client, create_listing):
    create_listing(category="Pets")
    create_listing(name="Dog Food", category="Pet Food")
    assert ids(client.get("/listings", params={"category": "all"})) == ids(client.get("/listings"))
    assert len(ids(client.get("/listings"))) == 2


def test_category_filter(client, create_listing):
    create_listing(category="Pets")
    food = create_listing(name="Dog Food", category="Pet Food")
    assert ids(client.get("/listings", params={"category": "Pet Food"})) == {food["id"]}


def test_price_range_filter(client, create_listing):
    cheap = create_listing(name="Chew Toy", category="Accessories", price=10)
    mid = create_listing(name="Dog Bed", category="Accessories", price=50)
    edge = create_listing(name="Cat Tree", category="Accessories", price=100)
    create_listing(name="Puppy", price=800)
    res = client.get("/listings", params={"minPrice": 50, "maxPrice": 100})
    assert ids(res) == {mid["id"], edge["id"]}
    assert cheap["id"] not in ids(res)


def test_inverted_price_range_is_empty(client, create_listing):
    create_listing(price=50)
    res = client.get("/listings", params={"minPrice": 100, "maxPrice": 10})
    assert res.status_code == 200
    assert res.json()["listings"] == []


def test_search_and_location_filters(client, create_listing):
    puppy = create_listing(name="Labrador Puppy", location="Austin, TX")
    create_listing(name="Cat Scratching Post", category="Accessories", location="Miami, FL",
                   description="Tall scratching post for cats.")
    assert ids(client.get("/listings", params={"search": "LABRADOR"})) == {puppy["id"]}
    assert ids(client.get("/listings", params={"search": "vaccinated puppy"})) == {puppy["id"]}
    assert ids(client.get("/listings", params={"location": "austin"})) == {puppy["id"]}


def test_search_text_is_not_a_regex(client, create_listing):
    create_listing(name="Puppy")
    assert client.get("/listings", params={"search": ".*"}).json()["listings"] == []


def test_non_finite_price_bound_rejected(client):
    res = client.get("/listings", params={"maxPrice": "inf"})
    assert res.status_code == 400
    assert res.json()["details"] == ["maxPrice: must be a finite number"]


def test_sorting(client, create_listing):
    create_listing(name="Bb", price=30)
    create_listing(name="Aa", price=10)
    create_listing(name="Cc", price=20)
    res = client.get("/listings", params={"sortBy": "price", "sortOrder": "asc"})
    assert [item["price"] for item in res.json()["listings"]] == [10, 20, 30]
    res = client.get("/listings")
    assert [item["name"] for item in res.json()["listings"]] == ["Cc", "Aa", "Bb"]


def test_unlisted_sort_field_rejected(client):
    res = client.get("/listings", params={"sortBy": "password_hash"})
    assert res.status_code == 400
    assert res.json()["error"] == "Validation failed"


def test_inactive_listings_hidden_from_index(client, create_listing, seller_token):
    listing = create_listing()
    client.put(f"/listings/{listing['id']}", json={"status": "inactive"}, headers=auth(seller_token))
    assert client.get("/listings").json()["listings"] == []


def test_listing_index_degrades_without_database(client):
    client.app.state.db = None
    res = client.get("/listings")
    assert res.status_code == 200
    assert res.json()["listings"] == []
    assert client.get("/recent-listings").json() == []


def test_get_listing_with_reviews_and_views(client, create_listing, buyer_token, db):
    listing = create_listing()
    for email, rating in (("r1@pawmart.io", 2), ("r2@pawmart.io", 4), ("r3@pawmart.io", 5)):
        token = register(client, email)
        client.post("/reviews", json={"listing_id": listing["id"], "rating": rating, "comment": "Lovely pet"},
                    headers=auth(token))
    res = client.get(f"/listings/{listing['id']}")
    assert res.status_code == 200
    body = res.json()
    assert body["average_rating"] == 3.7
    assert body["review_count"] == 3
    assert len(body["reviews"]) == 3
    assert body["views"] == 1
    assert db.listing.find_one({"_id": ObjectId(listing["id"])})["views"] == 1


def test_get_listing_without_reviews(client, create_listing):
    listing = create_listing()
    body = client.get(f"/listings/{listing['id']}").json()
    assert body["average_rating"] == 0
    assert body["reviews"] == []


def test_get_listing_errors(client):
    assert client.get("/listings/not-an-id").status_code == 400
    res = client.get(f"/listings/{ObjectId()}")
    assert res.status_code == 404
    assert res.json() == {"error": "Listing not found"}


def test_owner_updates_listing(client, create_listing, seller_token):
    listing = create_listing()
    res = client.put(f"/listings/{listing['id']}", json={"price": 750}, headers=auth(seller_token))
    assert res.status_code == 200
    assert res.json()["price"] == 750
    assert res.json()["name"] == listing["name"]


def test_update_rejects_non_whitelisted_fields(client, create_listing, seller_token, db):
    listing = create_listing()
    res = client.put(f"/listings/{listing['id']}", json={"views": 9999, "email": "x@pawmart.io"},
                     headers=auth(seller_token))
    assert res.status_code == 400
    assert db.listing.find_one({"_id": ObjectId(listing["id"])})["views"] == 0


def test_update_with_no_fields(client, create_listing, seller_token):
    listing = create_listing()
    assert client.put(f"/listings/{listing['id']}", json={}, headers=auth(seller_token)).status_code == 400


def test_non_owner_cannot_update_or_delete(client, create_listing, db):
    listing = create_listing()
    other = register(client, "other@pawmart.io", role="seller")
    res = client.put(f"/listings/{listing['id']}", json={"price": 1}, headers=auth(other))
    assert res.status_code == 403
    assert "Golden" not in res.text
    res = client.delete(f"/listings/{listing['id']}", headers=auth(other))
    assert res.status_code == 403
    stored = db.listing.find_one({"_id": ObjectId(listing["id"])})
    assert stored["price"] == 800


def test_admin_can_update_and_delete_any_listing(client, create_listing, admin_token, db):
    listing = create_listing()
    res = client.put(f"/listings/{listing['id']}", json={"price": 5}, headers=auth(admin_token))
    assert res.status_code == 200
    res = client.delete(f"/listings/{listing['id']}", headers=auth(admin_token))
    assert res.status_code == 200
    assert db.listing.count_documents({}) == 0


def test_owner_deletes_listing(client, create_listing, seller_token):
    listing = create_listing()
    res = client.delete(f"/listings/{listing['id']}", headers=auth(seller_token))
    assert res.json() == {"message": "Listing deleted successfully"}
    assert client.get(f"/listings/{listing['id']}").status_code == 404


def test_listings_by_category(client, create_listing):
    create_listing(category="Pets")
    food = create_listing(name="Kibble", category="Pet Food")
    res = client.get("/listings/category/Pet Food")
    assert ids(res) == {food["id"]}
    assert client.get("/listings/category/all").json()["pagination"]["totalItems"] == 2
    assert client.get("/listings/category/Reptiles").status_code == 400


def test_listings_by_user_self_or_admin(client, create_listing, seller_token, buyer_token, admin_token):
    create_listing()
    create_listing(name="Second")
    res = client.get("/listings/user/seller@pawmart.io", headers=auth(seller_token))
    assert res.json()["pagination"]["totalItems"] == 2
    assert client.get("/listings/user/seller@pawmart.io", headers=auth(admin_token)).status_code == 200
    assert client.get("/listings/user/seller@pawmart.io", headers=auth(buyer_token)).status_code == 403


def test_recent_listings(client, create_listing):
    for i in range(8):
        create_listing(name=f"Pet {i}")
    res = client.get("/recent-listings")
    assert [item["name"] for item in res.json()] == [f"Pet {i}" for i in range(7, 1, -1)]
    assert len(client.get("/recent-listings", params={"limit": 3}).json()) == 3


def test_search_endpoint(client, create_listing):
    food = create_listing(name="Kibble", category="Pet Food", description="Dry food for adult dogs.")
    create_listing(name="Scratching Post", category="Accessories", description="Tall post for indoor cats.")
    assert ids(client.get("/search", params={"q": "pet food"})) == {food["id"]}
    assert ids(client.get("/search", params={"q": "kibble"})) == {food["id"]}


def test_search_requires_query(client):
    for params in ({}, {"q": "   "}):
        res = client.get("/search", params=params)
        assert res.status_code == 400
        assert res.json()["error"] == "Search query is required"
