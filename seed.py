import logging

from fastapi import APIRouter, Depends

import config
from admin_catalog import slugify
from auth import hash_password
from database import create_document, get_db, utcnow
from schemas import Category as CategorySchema, Product as ProductSchema, User as UserSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["seed"])

DEFAULT_CATEGORIES = [
    ("Casual", "Everyday comfort wear"),
    ("Formal", "Sharp looks for the office and events"),
    ("Traditional", "Ethnic and festive classics"),
    ("Party", "Statement pieces for the night out"),
    ("Work", "Smart workwear"),
    ("Festive", "Celebration outfits"),
]

DEMO_PRODUCTS = [
    {
        "name": "Linen Relaxed Shirt",
        "description": "Breathable linen shirt with a relaxed fit for warm days.",
        "category": "Casual",
        "price": 1499,
        "images": [{"url": "https://images.unsplash.com/photo-1596755094514-f87e34085b2c", "alt": "Linen shirt"}],
        "sizes": ["S", "M", "L", "XL"],
        "colors": ["White", "Sky Blue"],
        "stock": 40,
        "tags": ["linen", "shirt", "summer"],
    },
    {
        "name": "Denim Jacket",
        "description": "Classic mid-wash denim jacket that layers over anything.",
        "category": "Casual",
        "price": 2999,
        "images": [{"url": "https://images.unsplash.com/photo-1551537482-f2075a1d41f2", "alt": "Denim jacket"}],
        "sizes": ["M", "L", "XL"],
        "colors": ["Blue"],
        "stock": 25,
        "tags": ["denim", "jacket"],
    },
    {
        "name": "Slim Fit Blazer",
        "description": "Tailored single-breasted blazer in a wool blend.",
        "category": "Formal",
        "price": 5999,
        "images": [{"url": "https://images.unsplash.com/photo-1507679799987-c73779587ccf", "alt": "Blazer"}],
        "sizes": ["38", "40", "42", "44"],
        "colors": ["Navy", "Charcoal"],
        "stock": 15,
        "tags": ["blazer", "suit", "formal"],
        "is_featured": True,
    },
    {
        "name": "Silk Banarasi Saree",
        "description": "Handwoven Banarasi silk saree with zari border.",
        "description_hi": "ज़री बॉर्डर के साथ हाथ से बुनी बनारसी सिल्क साड़ी।",
        "category": "Traditional",
        "price": 8999,
        "images": [{"url": "https://images.unsplash.com/photo-1610030469983-98e550d6193c", "alt": "Saree"}],
        "colors": ["Maroon", "Gold"],
        "stock": 8,
        "tags": ["saree", "silk", "ethnic"],
        "is_featured": True,
    },
    {
        "name": "Sequin Evening Dress",
        "description": "Sequinned midi dress for parties and evening events.",
        "category": "Party",
        "price": 4499,
        "images": [{"url": "https://images.unsplash.com/photo-1566174053879-31528523f8ae", "alt": "Evening dress"}],
        "sizes": ["XS", "S", "M", "L"],
        "colors": ["Black", "Silver"],
        "stock": 12,
        "tags": ["dress", "sequin", "party"],
    },
    {
        "name": "Cotton Chinos",
        "description": "Stretch cotton chinos that work from desk to dinner.",
        "category": "Work",
        "price": 1999,
        "images": [{"url": "https://images.unsplash.com/photo-1473966968600-fa801b869a1a", "alt": "Chinos"}],
        "sizes": ["30", "32", "34", "36"],
        "colors": ["Beige", "Olive"],
        "stock": 30,
        "tags": ["chinos", "trousers", "work"],
    },
    {
        "name": "Embroidered Kurta Set",
        "description": "Embroidered cotton kurta with matching pyjama for festivals.",
        "category": "Festive",
        "price": 3499,
        "images": [{"url": "https://images.unsplash.com/photo-1583391733956-6c78276477e2", "alt": "Kurta set"}],
        "sizes": ["S", "M", "L", "XL"],
        "colors": ["Mustard", "Ivory"],
        "stock": 20,
        "tags": ["kurta", "ethnic", "festive"],
    },
    {
        "name": "Lehenga Choli",
        "description": "Flared georgette lehenga with mirror work.",
        "category": "Festive",
        "price": 11999,
        "images": [{"url": "https://images.unsplash.com/photo-1594463750939-ebb28c3f7f75", "alt": "Lehenga"}],
        "sizes": ["S", "M", "L"],
        "colors": ["Pink", "Teal"],
        "stock": 6,
        "tags": ["lehenga", "wedding", "festive"],
    },
]


def seed_categories(db) -> dict:
    """Create missing default categories; returns name -> id."""
    ids = {}
    for order, (name, description) in enumerate(DEFAULT_CATEGORIES):
        existing = db["category"].find_one({"name": name})
        if existing:
            ids[name] = str(existing["_id"])
            continue
        category = CategorySchema(name=name, slug=slugify(name), description=description, display_order=order)
        ids[name] = create_document(db, "category", category)
    return ids


def seed_products(db, category_ids: dict) -> int:
    if db["product"].count_documents({}) > 0:
        return 0
    for p in DEMO_PRODUCTS:
        data = dict(p)
        name = data.pop("category")
        product = ProductSchema(**data, category=category_ids[name], category_name=name, original_price=data["price"])
        create_document(db, "product", product)
    return len(DEMO_PRODUCTS)


def seed_admin(db) -> bool:
    """Create the configured admin, or promote and unblock an existing account."""
    existing = db["user"].find_one({"email": config.ADMIN_EMAIL})
    if existing:
        db["user"].update_one(
            {"_id": existing["_id"]},
            {"$set": {"is_admin": True, "is_blocked": False, "is_active": True, "updated_at": utcnow()}},
        )
        return False
    admin = UserSchema(
        name=config.ADMIN_NAME,
        email=config.ADMIN_EMAIL,
        password_hash=hash_password(config.ADMIN_PASSWORD),
        is_admin=True,
    )
    create_document(db, "user", admin)
    return True


def ensure_seeded(db) -> dict:
    category_ids = seed_categories(db)
    products = seed_products(db, category_ids)
    admin_created = seed_admin(db)
    logger.info("Seed complete: %s products added, admin created=%s", products, admin_created)
    return {
        "seeded": bool(products) or admin_created,
        "categories": len(category_ids),
        "products": db["product"].count_documents({}),
        "admin_created": admin_created,
    }


@router.post("/seed")
def seed(db=Depends(get_db)):
    return ensure_seeded(db)
