import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from pymongo import DESCENDING
from pymongo.database import Database

from database import COLL_COMMENT, get_db, parse_object_id, serialize, utcnow
from schemas import Category, Comment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/comments", tags=["comments"])


class CommentCreateRequest(BaseModel):
    article_id: str
    category: Category
    content: str = Field(..., min_length=1, max_length=1000)
    email: EmailStr
    author: Optional[str] = None
    mobile: Optional[str] = None


@router.get("/{article_id}")
def list_comments(article_id: str, db: Database = Depends(get_db)):
    oid = parse_object_id(article_id, "article id")
    docs = db[COLL_COMMENT].find({"article_id": oid}).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
    return [serialize(d) for d in docs]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_comment(payload: CommentCreateRequest, db: Database = Depends(get_db)):
    oid = parse_object_id(payload.article_id, "article id")
    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="content: must not be blank")
    comment = Comment(
        article_id=payload.article_id,
        category=payload.category,
        content=content,
        author=(payload.author or "").strip() or str(payload.email),
        email=payload.email,
        mobile=payload.mobile or "",
    )
    doc = comment.model_dump()
    doc["article_id"] = oid
    doc["created_at"] = utcnow()
    doc["_id"] = db[COLL_COMMENT].insert_one(doc).inserted_id
    return serialize(doc)


@router.delete("/{comment_id}")
def delete_comment(comment_id: str, db: Database = Depends(get_db)):
    result = db[COLL_COMMENT].delete_one({"_id": parse_object_id(comment_id, "comment id")})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Comment not found")
    logger.info("Deleted comment %s", comment_id)
    return {"success": True, "message": "Comment deleted successfully"}
