"""
Article likes.

One row per (article, liker) in the `like` collection, backed by a unique
index, with a denormalized counter on the article. The liker is the signed-in
user when a valid bearer token is sent, otherwise the caller's normalized IP.
"""
import logging
from typing import Optional, Tuple

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Request
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from articles import get_article_or_404
from auth import get_optional_user_id
from database import COLL_ARTICLE, COLL_LIKE, get_db, utcnow
from ratelimit import client_ip
from schemas import CATEGORIES, Like

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/likes", tags=["likes"])


def liker_key(request: Request, user_id: Optional[str]) -> str:
    if user_id:
        return f"user:{user_id}"
    return f"ip:{client_ip(request)}"


def get_liker(request: Request, user_id: Optional[str] = Depends(get_optional_user_id)) -> str:
    return liker_key(request, user_id)


def enforce_like_rate_limit(request: Request) -> None:
    request.app.state.like_limiter.hit(client_ip(request))


def _increment(db: Database, article_id: ObjectId) -> int:
    doc = db[COLL_ARTICLE].find_one_and_update(
        {"_id": article_id}, {"$inc": {"likes": 1}}, return_document=ReturnDocument.AFTER
    )
    return doc.get("likes", 0) if doc else 0


def _decrement(db: Database, article_id: ObjectId) -> int:
    doc = db[COLL_ARTICLE].find_one_and_update(
        {"_id": article_id, "likes": {"$gt": 0}},
        {"$inc": {"likes": -1}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        doc = db[COLL_ARTICLE].find_one({"_id": article_id}) or {}
    return max(0, doc.get("likes", 0))


def _current_count(db: Database, article_id: ObjectId) -> int:
    doc = db[COLL_ARTICLE].find_one({"_id": article_id}, {"likes": 1}) or {}
    return max(0, doc.get("likes", 0))


def add_like(db: Database, article_id: ObjectId, liker: str) -> int:
    row = Like(article_id=str(article_id), liker=liker).model_dump()
    row.update({"article_id": article_id, "created_at": utcnow()})
    try:
        db[COLL_LIKE].insert_one(row)
    except DuplicateKeyError:
        # Lost the race to a concurrent like from the same liker.
        return _current_count(db, article_id)
    return _increment(db, article_id)


def remove_like(db: Database, article_id: ObjectId, liker: str) -> int:
    result = db[COLL_LIKE].delete_one({"article_id": article_id, "liker": liker})
    if result.deleted_count == 0:
        # Already removed by a concurrent unlike.
        return _current_count(db, article_id)
    return _decrement(db, article_id)


def toggle_like(db: Database, article_id: ObjectId, liker: str) -> Tuple[bool, int]:
    """Flip the like state of liker on article_id; returns (liked, like count)."""
    existing = db[COLL_LIKE].find_one({"article_id": article_id, "liker": liker})
    if existing:
        return False, remove_like(db, article_id, liker)
    return True, add_like(db, article_id, liker)


def like_status(db: Database, article: dict, liker: str) -> dict:
    liked = db[COLL_LIKE].find_one({"article_id": article["_id"], "liker": liker}) is not None
    return {"liked": liked, "likes": max(0, article.get("likes", 0))}


def _article_in_category(db: Database, category: str, article_id: str) -> dict:
    article = get_article_or_404(db, article_id)
    if category not in CATEGORIES or article.get("category") != category:
        raise HTTPException(status_code=404, detail="Article not found")
    return article


def _toggle_response(db: Database, article: dict, liker: str) -> dict:
    liked, count = toggle_like(db, article["_id"], liker)
    logger.info("Article %s %s by %s (likes=%d)", article["_id"], "liked" if liked else "unliked", liker, count)
    return {"success": True, "liked": liked, "likes": count}


@router.post("/{article_id}", dependencies=[Depends(enforce_like_rate_limit)])
def toggle(article_id: str, liker: str = Depends(get_liker), db: Database = Depends(get_db)):
    article = get_article_or_404(db, article_id)
    return _toggle_response(db, article, liker)


@router.get("/{article_id}/status")
def status(article_id: str, liker: str = Depends(get_liker), db: Database = Depends(get_db)):
    article = get_article_or_404(db, article_id)
    return like_status(db, article, liker)


@router.post("/{category}/{article_id}/like", dependencies=[Depends(enforce_like_rate_limit)])
def toggle_in_category(
    category: str, article_id: str, liker: str = Depends(get_liker), db: Database = Depends(get_db)
):
    article = _article_in_category(db, category, article_id)
    return _toggle_response(db, article, liker)


@router.get("/{category}/{article_id}/like-status")
def status_in_category(
    category: str, article_id: str, liker: str = Depends(get_liker), db: Database = Depends(get_db)
):
    article = _article_in_category(db, category, article_id)
    return like_status(db, article, liker)
