"""
Demo data for local development.

    python seed.py [shops|users|riders|orders|all]

Each loader wipes its collection and inserts the demo documents. The
process exits 0 on success and 1 on failure.
"""
import argparse
import logging
import sys

import database
from schemas import Order, OrderForMerchant, Rider, Shop, User

logger = logging.getLogger("seed")

DEFAULT_WASH_SERVICES = [
    {"weight": 9, "options": [
        {"setting": "Cold", "duration": 35, "price": 40},
        {"setting": "Warm water ≈ 40°", "duration": 40, "price": 50},
        {"setting": "Hot water ≈ 60°", "duration": 45, "price": 60},
    ]},
    {"weight": 14, "options": [
        {"setting": "Cold", "duration": 40, "price": 60},
        {"setting": "Warm water ≈ 40°", "duration": 45, "price": 70},
        {"setting": "Hot water ≈ 60°", "duration": 50, "price": 80},
    ]},
    {"weight": 18, "options": [
        {"setting": "Cold", "duration": 45, "price": 70},
        {"setting": "Warm water ≈ 40°", "duration": 50, "price": 80},
        {"setting": "Hot water ≈ 60°", "duration": 60, "price": 90},
    ]},
]

DEFAULT_DRY_SERVICES = [
    {"weight": 15, "options": [
        {"setting": "Low Heat 30°-40° C", "duration": 45, "price": 50},
        {"setting": "Medium Heat 50°-60° C", "duration": 40, "price": 50},
        {"setting": "High Heat 60°-70° C", "duration": 35, "price": 50},
    ]},
    {"weight": 25, "options": [
        {"setting": "Low Heat 30°-40° C", "duration": 70, "price": 70},
        {"setting": "Medium Heat 50°-60° C", "duration": 60, "price": 70},
        {"setting": "High Heat 60°-70° C", "duration": 50, "price": 70},
    ]},
]

DEFAULT_IRONING_SERVICES = [
    {"category": "Work wear", "options": [
        {"type": "Shirt", "price": 30},
        {"type": "Trousers", "price": 30},
        {"type": "Skirt", "price": 35},
        {"type": "Suit jacket", "price": 50},
        {"type": "Suit trousers", "price": 40},
    ]},
    {"category": "Casual", "options": [
        {"type": "T-shirt", "price": 20},
        {"type": "Polo shirt", "price": 25},
        {"type": "Jeans", "price": 30},
        {"type": "Dress", "price": 50},
    ]},
    {"category": "Formal", "options": [
        {"type": "Evening gown", "price": 100},
        {"type": "Traditional dress", "price": 150},
        {"type": "Full suit", "price": 120},
    ]},
]

DEFAULT_FOLDING_SERVICES = [
    {"options": [
        {"type": "Standard fold", "price_per_kg": 10},
        {"type": "Sorted fold", "price_per_kg": 15},
        {"type": "Premium fold (bagged)", "price_per_kg": 20},
    ]},
]

DEFAULT_OTHER_SERVICES = [
    {"category": "Special cleaning", "options": [
        {"name": "Dry cleaning", "price": 80, "unit": "piece"},
        {"name": "Curtains", "price": 50, "unit": "sq.m"},
        {"name": "Carpet", "price": 100, "unit": "sq.m"},
        {"name": "Blanket", "price": 100, "unit": "piece"},
        {"name": "Pillow", "price": 80, "unit": "piece"},
    ]},
    {"category": "Extras", "options": [
        {"name": "Zip repair", "price": 50, "unit": "piece"},
        {"name": "Button repair", "price": 20, "unit": "button"},
        {"name": "Shoe polish", "price": 60, "unit": "pair"},
        {"name": "Sneaker wash", "price": 100, "unit": "pair"},
    ]},
]

DEMO_SHOPS = [
    {
        "name": "Oi Oi Oi Coin Laundry - Baan Pim",
        "rating": 4.9, "review_count": 2000, "price_level": 3, "type": "coin",
        "delivery_fee": 10, "delivery_time": 35,
        "wash_services": DEFAULT_WASH_SERVICES, "dry_services": DEFAULT_DRY_SERVICES,
    },
    {
        "name": "Clean & Fresh Laundry",
        "rating": 4.7, "review_count": 980, "price_level": 3, "type": "full",
        "delivery_fee": 25, "delivery_time": 50,
        "wash_services": DEFAULT_WASH_SERVICES, "dry_services": DEFAULT_DRY_SERVICES,
        "ironing_services": DEFAULT_IRONING_SERVICES, "folding_services": DEFAULT_FOLDING_SERVICES,
        "other_services": DEFAULT_OTHER_SERVICES,
    },
    {
        "name": "Budget Coin Laundry",
        "rating": 4.2, "review_count": 280, "price_level": 1, "type": "coin",
        "delivery_fee": 5, "delivery_time": 20,
        "wash_services": DEFAULT_WASH_SERVICES, "dry_services": DEFAULT_DRY_SERVICES,
    },
]

DEMO_USERS = [
    {"username": "dev-user", "email": "dev-user@example.com", "display_name": "Dev user",
     "balance": 9999, "is_onboarded": True},
    {"username": "testuser1", "email": "test1@example.com", "display_name": "Test User",
     "phone": "+66812345678", "address": "123 Sukhumvit Rd, Khlong Toei, Bangkok 10110",
     "balance": 500, "google_sub": "google_test_1", "is_onboarded": True},
    {"username": "testuser2", "email": "test2@example.com", "display_name": "Somchai Jaidee",
     "phone": "+66898765432", "address": "456 Phahonyothin Rd, Phaya Thai, Bangkok 10400",
     "balance": 1200, "google_sub": "google_test_2", "is_onboarded": True},
    {"username": "merchant1", "email": "merchant1@example.com", "display_name": "Shop owner",
     "role": "merchant", "is_onboarded": True},
]

DEMO_RIDERS = [
    {"full_name": "Anan Srisuk", "display_name": "Anan", "avatar_initial": "A",
     "phone": "+66811111111", "status": "online"},
    {"full_name": "Boonmee Kaew", "display_name": "Boon", "avatar_initial": "B",
     "phone": "+66822222222", "status": "offline"},
]

DEMO_ORDERS = [
    {"user_display_name": "Test User", "user_address": "123 Sukhumvit Rd, Khlong Toei, Bangkok 10110",
     "items": [
         {"name": "Wash 9 kg (warm)", "details": "Warm water ≈ 40°, 40 min", "price": 50},
         {"name": "Dry 15 kg (medium)", "details": "Medium Heat 50°-60° C, 40 min", "price": 50},
     ],
     "payment_method": "cash", "status": "decision"},
    {"user_display_name": "Somchai Jaidee", "user_address": "456 Phahonyothin Rd, Phaya Thai, Bangkok 10400",
     "items": [
         {"name": "Wash 14 kg (hot)", "details": "Hot water ≈ 60°, 50 min", "price": 80},
         {"name": "Ironing", "details": "Shirt", "price": 30},
     ],
     "payment_method": "wallet", "status": "at_shop"},
]


def _reset(name: str) -> None:
    database.get_db()[name].delete_many({})


def seed_shops() -> int:
    _reset("shop")
    for s in DEMO_SHOPS:
        database.create_document("shop", Shop(**s))
    return len(DEMO_SHOPS)


def seed_users() -> int:
    _reset("user")
    for u in DEMO_USERS:
        database.create_document("user", User(**u))
    return len(DEMO_USERS)


def seed_riders() -> int:
    _reset("rider")
    for r in DEMO_RIDERS:
        database.create_document("rider", Rider(**r))
    return len(DEMO_RIDERS)


def seed_orders() -> int:
    """Attach the demo orders to existing shops and the first user."""
    d = database.get_db()
    shops = list(d["shop"].find())
    if not shops:
        raise RuntimeError("No shops found, seed shops first")
    user = d["user"].find_one() or {}
    _reset("order")
    _reset("orderformerchant")
    for i, o in enumerate(DEMO_ORDERS):
        shop = shops[i % len(shops)]
        service_total = sum(item["price"] for item in o["items"])
        delivery_fee = shop.get("delivery_fee", 0)
        model = OrderForMerchant if shop["type"] == "full" else Order
        order = model(
            user_id=str(user.get("_id", "dev-test-user")),
            shop_id=str(shop["_id"]),
            shop_name=shop["name"],
            shop_type=shop["type"],
            service_total=service_total,
            delivery_fee=delivery_fee,
            total=service_total + delivery_fee,
            **o,
        )
        database.create_document("orderformerchant" if shop["type"] == "full" else "order", order)
    return len(DEMO_ORDERS)


LOADERS = {
    "shops": seed_shops,
    "users": seed_users,
    "riders": seed_riders,
    "orders": seed_orders,
}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Load demo data into MongoDB")
    parser.add_argument("what", nargs="?", default="all", choices=list(LOADERS) + ["all"])
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    names = list(LOADERS) if args.what == "all" else [args.what]
    try:
        database.ensure_indexes()
        for name in names:
            count = LOADERS[name]()
            logger.info("Seeded %d %s", count, name)
    except Exception:
        logger.exception("Seeding failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
