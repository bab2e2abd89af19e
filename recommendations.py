"""
"Similar products" built on stored product embeddings.

Embeddings come from the Generative Language `embedContent` endpoint. Every
request does a linear scan over the products that carry an embedding, keeps
the ones above RECOMMENDATION_THRESHOLD and caches the ranked list in the
`recommendation` collection for RECOMMENDATION_TTL_DAYS.
"""
import logging
import time
from datetime import timedelta
from typing import List, Optional, Sequence

import numpy as np
import requests
from fastapi import APIRouter, Depends, HTTPException, Query

import config
from auth import require_admin
from database import get_db, maybe_object_id, query_time, serialize_doc, to_object_id, utcnow
from schemas import Recommendation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/recommendations", tags=["recommendations"])

EMBED_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:embedContent"
FALLBACK_SCORE = 0.5


def generate_embedding(text: str) -> Optional[List[float]]:
    if not config.GEMINI_API_KEY:
        return None
    try:
        response = requests.post(
            EMBED_URL.format(model=config.EMBEDDING_MODEL),
            params={"key": config.GEMINI_API_KEY},
            json={"model": f"models/{config.EMBEDDING_MODEL}", "content": {"parts": [{"text": text}]}},
            timeout=config.EMBEDDING_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        values = (response.json().get("embedding") or {}).get("values")
        return [float(v) for v in values] if values else None
    except (requests.RequestException, ValueError) as e:
        logger.warning("Embedding request failed: %s", e)
        return None


def embedding_text(product: dict) -> str:
    parts = [product.get("name"), product.get("description"), product.get("category_name") or product.get("category")]
    parts.extend(product.get("tags") or [])
    return " ".join(str(p) for p in parts if p)


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def rank_similar(target: Sequence[float], candidates: List[dict], threshold: float, limit: int) -> List[dict]:
    scored = [
        {"product_id": str(p["_id"]), "similarity_score": cosine_similarity(target, p.get("embedding"))}
        for p in candidates
    ]
    scored = [s for s in scored if s["similarity_score"] > threshold]
    scored.sort(key=lambda s: s["similarity_score"], reverse=True)
    return scored[:limit]


def ensure_embedding(db, product: dict) -> Optional[List[float]]:
    if product.get("embedding"):
        return product["embedding"]
    embedding = generate_embedding(embedding_text(product))
    if embedding:
        db["product"].update_one({"_id": product["_id"]}, {"$set": {"embedding": embedding, "updated_at": utcnow()}})
        product["embedding"] = embedding
    return embedding


def attach_products(db, entries: List[dict]) -> List[dict]:
    ids = [maybe_object_id(e["product_id"]) for e in entries]
    found = {
        str(p["_id"]): p
        for p in db["product"].find({"_id": {"$in": [i for i in ids if i]}}, {"embedding": 0})
    }
    result = []
    for entry in entries:
        product = found.get(entry["product_id"])
        if product:
            result.append({**entry, "product": serialize_doc(product)})
    return result


@router.get("/{product_id}")
def get_similar_products(product_id: str, limit: int = Query(5, ge=1, le=50), db=Depends(get_db)):
    product = db["product"].find_one({"_id": to_object_id(product_id, "Product")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    cached = db["recommendation"].find_one({"product_id": product_id, "expires_at": {"$gt": query_time(utcnow())}})
    if cached and cached.get("recommended_products"):
        return {
            "product": serialize_doc({k: v for k, v in product.items() if k != "embedding"}),
            "recommendations": attach_products(db, cached["recommended_products"][:limit]),
            "cached": True,
        }

    embedding = ensure_embedding(db, product)
    public_product = serialize_doc({k: v for k, v in product.items() if k != "embedding"})
    if not embedding:
        similar = db["product"].find(
            {"_id": {"$ne": product["_id"]}, "category": product.get("category"), "is_active": True},
            {"embedding": 0},
        ).limit(limit)
        return {
            "product": public_product,
            "recommendations": [
                {
                    "product_id": str(p["_id"]),
                    "similarity_score": FALLBACK_SCORE,
                    "reason": "Similar category",
                    "product": serialize_doc(p),
                }
                for p in similar
            ],
            "cached": False,
        }

    candidates = db["product"].find({
        "_id": {"$ne": product["_id"]},
        "embedding": {"$exists": True, "$ne": None},
        "is_active": True,
    })
    ranked = rank_similar(embedding, list(candidates), config.RECOMMENDATION_THRESHOLD, limit)
    now = utcnow()
    cache = Recommendation(
        product_id=product_id,
        recommended_products=ranked,
        type="similarity",
        expires_at=now + timedelta(days=config.RECOMMENDATION_TTL_DAYS),
    ).model_dump()
    db["recommendation"].update_one(
        {"product_id": product_id},
        {
            "$set": {**cache, "updated_at": now},
            "$setOnInsert": {"created_at": now},
        },
        upsert=True,
    )
    return {"product": public_product, "recommendations": attach_products(db, ranked), "cached": False}


@router.post("/generate-embeddings")
def generate_all_embeddings(admin=Depends(require_admin), db=Depends(get_db)):
    products = list(db["product"].find({"$or": [{"embedding": {"$exists": False}}, {"embedding": None}]}))
    processed = 0
    for index, product in enumerate(products):
        if index:
            time.sleep(config.EMBEDDING_RATE_LIMIT_SECONDS)
        embedding = generate_embedding(embedding_text(product))
        if embedding:
            db["product"].update_one({"_id": product["_id"]}, {"$set": {"embedding": embedding, "updated_at": utcnow()}})
            processed += 1
    logger.info("Generated embeddings for %s of %s products", processed, len(products))
    return {"message": f"Generated embeddings for {processed} products", "processed": processed}
