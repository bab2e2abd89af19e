import logging
import re
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

import config
from auth import require_admin
from catalog import find_product, search_filter
from database import create_document, get_db, maybe_object_id, paginate, serialize_doc, to_object_id, utcnow
from schemas import Category as CategorySchema, Image, Product as ProductSchema

logger = logging.getLogger(__name__)

products_router = APIRouter(prefix="/api/admin/products", tags=["admin"], dependencies=[Depends(require_admin)])
categories_router = APIRouter(prefix="/api/admin/categories", tags=["admin"], dependencies=[Depends(require_admin)])

PRODUCT_SORT_FIELDS = {"created_at", "updated_at", "name", "price", "stock"}
EMBEDDING_SOURCE_FIELDS = {"name", "description", "tags"}


def slugify(name: str) -> str:
    slug = name.strip().lower()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_-]+", "-", slug)
    return slug.strip("-")


def find_category(db, category_id: str) -> dict:
    category = db["category"].find_one({"_id": to_object_id(category_id, "Category")})
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


def category_or_400(db, category_id: str) -> dict:
    oid = maybe_object_id(category_id)
    category = db["category"].find_one({"_id": oid}) if oid else None
    if not category:
        raise HTTPException(status_code=400, detail="Category not found")
    return category


def with_parent(db, category: dict) -> dict:
    category = dict(category)
    oid = maybe_object_id(category.get("parent_category"))
    if oid:
        parent = db["category"].find_one({"_id": oid}, {"name": 1, "slug": 1})
        if parent:
            category["parent_category"] = parent
    return serialize_doc(category)


# ----------------------- Models -----------------------
class ProductCreateBody(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    description_hi: Optional[str] = None
    category: str
    subcategory: Optional[str] = None
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    discount: float = Field(0, ge=0, le=100)
    images: List[Image] = []
    sizes: List[str] = []
    colors: List[str] = []
    stock: int = Field(0, ge=0)
    tags: List[str] = []
    is_active: bool = True
    is_featured: bool = False


class ProductUpdateBody(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    description_hi: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = Field(None, ge=0, le=100)
    images: Optional[List[Image]] = None
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    stock: Optional[int] = Field(None, ge=0)
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None


class CategoryCreateBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    image: Optional[Image] = None
    parent_category: Optional[str] = None
    is_active: bool = True
    display_order: int = 0


class CategoryUpdateBody(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    image: Optional[Image] = None
    parent_category: Optional[str] = None
    is_active: Optional[bool] = None
    display_order: Optional[int] = None


# ----------------------- Products -----------------------
@products_router.get("")
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    in_stock: Optional[bool] = None,
    is_active: Optional[bool] = None,
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    db=Depends(get_db),
):
    filt = {}
    if search:
        filt.update(search_filter(search, ["name", "description"]))
    if category:
        filt["category"] = category
    if min_price is not None or max_price is not None:
        filt["price"] = {}
        if min_price is not None:
            filt["price"]["$gte"] = min_price
        if max_price is not None:
            filt["price"]["$lte"] = max_price
    if in_stock is not None:
        filt["stock"] = {"$gt": 0} if in_stock else {"$lte": 0}
    if is_active is not None:
        filt["is_active"] = is_active
    if sort_by not in PRODUCT_SORT_FIELDS:
        sort_by = "created_at"

    total = db["product"].count_documents(filt)
    cursor = (
        db["product"].find(filt, {"embedding": 0})
        .sort(sort_by, 1 if sort_order == "asc" else -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    products = [serialize_doc(p) for p in cursor]
    return {"products": products, "pagination": paginate(total, page, limit, len(products))}


@products_router.get("/stats")
def product_stats(db=Depends(get_db)):
    products = db["product"]
    return {
        "total_products": products.count_documents({}),
        "active_products": products.count_documents({"is_active": True}),
        "out_of_stock": products.count_documents({"stock": {"$lte": 0}}),
        "low_stock": products.count_documents({"stock": {"$gt": 0, "$lte": config.LOW_STOCK_THRESHOLD}}),
        "featured_products": products.count_documents({"is_featured": True}),
    }


@products_router.get("/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    product = find_product(db, product_id)
    product.pop("embedding", None)
    return serialize_doc(product)


@products_router.post("", status_code=201)
def create_product(body: ProductCreateBody, db=Depends(get_db)):
    category = category_or_400(db, body.category)
    data = body.model_dump()
    if data["original_price"] is None:
        data["original_price"] = data["price"]
    product = ProductSchema(**data, category_name=category["name"])
    product_id = create_document(db, "product", product)
    logger.info("Product '%s' created in %s", body.name, category["name"])
    created = find_product(db, product_id)
    created.pop("embedding", None)
    return {"message": "Product created successfully", "product": serialize_doc(created)}


@products_router.put("/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, db=Depends(get_db)):
    product = find_product(db, product_id)
    update = body.model_dump(exclude_none=True)
    if update.get("category"):
        update["category_name"] = category_or_400(db, update["category"])["name"]
    if EMBEDDING_SOURCE_FIELDS & update.keys():
        # stale once the text it was computed from changes
        update["embedding"] = None
        db["recommendation"].delete_many({"product_id": product_id})
    update["updated_at"] = utcnow()
    db["product"].update_one({"_id": product["_id"]}, {"$set": update})
    updated = find_product(db, product_id)
    updated.pop("embedding", None)
    return {"message": "Product updated successfully", "product": serialize_doc(updated)}


@products_router.delete("/{product_id}")
def delete_product(product_id: str, db=Depends(get_db)):
    product = find_product(db, product_id)
    db["product"].delete_one({"_id": product["_id"]})
    db["recommendation"].delete_many({"product_id": product_id})
    logger.info("Product '%s' deleted", product["name"])
    return {"message": "Product deleted successfully"}


# ----------------------- Categories -----------------------
@categories_router.get("")
def list_categories(is_active: Optional[bool] = None, parent_category: Optional[str] = None, db=Depends(get_db)):
    filt = {}
    if is_active is not None:
        filt["is_active"] = is_active
    if parent_category is not None:
        filt["parent_category"] = None if parent_category == "null" else parent_category
    cursor = db["category"].find(filt).sort([("display_order", 1), ("created_at", -1)])
    return [with_parent(db, c) for c in cursor]


@categories_router.get("/{category_id}")
def get_category(category_id: str, db=Depends(get_db)):
    return with_parent(db, find_category(db, category_id))


@categories_router.post("", status_code=201)
def create_category(body: CategoryCreateBody, db=Depends(get_db)):
    slug = slugify(body.name)
    if not slug:
        raise HTTPException(status_code=400, detail="Category name must contain letters or digits")
    if db["category"].find_one({"$or": [{"slug": slug}, {"name": body.name.strip()}]}):
        raise HTTPException(status_code=400, detail="Category with this name already exists")
    if body.parent_category:
        oid = maybe_object_id(body.parent_category)
        if not oid or not db["category"].find_one({"_id": oid}):
            raise HTTPException(status_code=400, detail="Parent category not found")

    category = CategorySchema(**body.model_dump(exclude={"name"}), name=body.name.strip(), slug=slug)
    category_id = create_document(db, "category", category)
    logger.info("Category '%s' created", category.name)
    return {"message": "Category created successfully", "category": with_parent(db, find_category(db, category_id))}


@categories_router.put("/{category_id}")
def update_category(category_id: str, body: CategoryUpdateBody, db=Depends(get_db)):
    category = find_category(db, category_id)
    update = body.model_dump(exclude_none=True)

    if update.get("name") and update["name"].strip() != category["name"]:
        update["name"] = update["name"].strip()
        update["slug"] = slugify(update["name"])
        if db["category"].find_one({"slug": update["slug"], "_id": {"$ne": category["_id"]}}):
            raise HTTPException(status_code=400, detail="Category with this name already exists")

    if "parent_category" in update and update["parent_category"]:
        if update["parent_category"] == category_id:
            raise HTTPException(status_code=400, detail="Category cannot be its own parent")
        oid = maybe_object_id(update["parent_category"])
        if not oid or not db["category"].find_one({"_id": oid}):
            raise HTTPException(status_code=400, detail="Parent category not found")

    update["updated_at"] = utcnow()
    db["category"].update_one({"_id": category["_id"]}, {"$set": update})
    if "name" in update:
        db["product"].update_many({"category": category_id}, {"$set": {"category_name": update["name"]}})
    return {"message": "Category updated successfully", "category": with_parent(db, find_category(db, category_id))}


@categories_router.delete("/{category_id}")
def delete_category(category_id: str, db=Depends(get_db)):
    category = find_category(db, category_id)
    product_count = db["product"].count_documents({"category": category_id})
    if product_count > 0:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete category. {product_count} product(s) are associated with this category.",
        )
    subcategory_count = db["category"].count_documents({"parent_category": category_id})
    if subcategory_count > 0:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete category. {subcategory_count} subcategory(ies) exist under this category.",
        )
    db["category"].delete_one({"_id": category["_id"]})
    logger.info("Category '%s' deleted", category["name"])
    return {"message": "Category deleted successfully"}
