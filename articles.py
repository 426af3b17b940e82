from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from pymongo import DESCENDING
from pymongo.database import Database

from database import COLL_ARTICLE, create_document, get_db, get_documents, parse_object_id, serialize
from schemas import Article, Category

router = APIRouter(prefix="/articles", tags=["articles"])


class ArticleCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None
    content: Optional[str] = None
    category: Category
    image_url: Optional[str] = None


def get_article_or_404(db: Database, article_id: str) -> dict:
    article = db[COLL_ARTICLE].find_one({"_id": parse_object_id(article_id, "article id")})
    if not article:
        raise HTTPException(status_code=404, detail="Article not found")
    return article


@router.post("", status_code=status.HTTP_201_CREATED)
def create_article(payload: ArticleCreateRequest, db: Database = Depends(get_db)):
    article = Article(**payload.model_dump(), likes=0)
    article_id = create_document(db, COLL_ARTICLE, article)
    return serialize(db[COLL_ARTICLE].find_one({"_id": parse_object_id(article_id)}))


@router.get("")
def list_articles(
    category: Optional[Category] = None,
    limit: int = Query(50, ge=1, le=200),
    db: Database = Depends(get_db),
):
    query = {"category": category} if category else {}
    docs = get_documents(db, COLL_ARTICLE, query, limit=limit, sort=[("created_at", DESCENDING), ("_id", DESCENDING)])
    return [serialize(d) for d in docs]


@router.get("/{article_id}")
def get_article(article_id: str, db: Database = Depends(get_db)):
    return serialize(get_article_or_404(db, article_id))
