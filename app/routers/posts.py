from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import PaginationParams, get_current_login, get_search_index
from app.http_headers import entity_alert_headers, pagination_headers
from app.schemas import PostPayload, PostResponse
from app.search import SearchIndex
from app.services import post_service

router = APIRouter(prefix="/api", tags=["posts"])

ENTITY_NAME = post_service.ENTITY_NAME


@router.post("/posts", status_code=201, response_model=PostResponse)
async def create_post(
    data: PostPayload,
    response: Response,
    db: AsyncSession = Depends(get_db),
    index: SearchIndex = Depends(get_search_index),
):
    post = await post_service.create_post(db, index, data)
    response.headers["Location"] = f"/api/posts/{post['id']}"
    response.headers.update(entity_alert_headers(ENTITY_NAME, "created", post["id"]))
    return post


@router.put("/posts", response_model=PostResponse)
async def update_post(
    data: PostPayload,
    response: Response,
    db: AsyncSession = Depends(get_db),
    index: SearchIndex = Depends(get_search_index),
):
    post = await post_service.update_post(db, index, data)
    response.headers.update(entity_alert_headers(ENTITY_NAME, "updated", post["id"]))
    return post


@router.get("/posts", response_model=list[PostResponse])
async def list_posts(
    request: Request,
    response: Response,
    pagination: PaginationParams = Depends(),
    eagerload: bool = Query(False, description="Accepted for client compatibility; tags are always loaded."),
    login: str | None = Depends(get_current_login),
    db: AsyncSession = Depends(get_db),
):
    items, total = await post_service.list_posts(
        db, login, pagination.page, pagination.size, pagination.sort
    )
    response.headers.update(pagination_headers(request.url, pagination.page, pagination.size, total))
    return items


@router.get("/posts/{post_id}", response_model=PostResponse)
async def get_post(post_id: int, db: AsyncSession = Depends(get_db)):
    return await post_service.get_post(db, post_id)


@router.delete("/posts/{post_id}", status_code=204)
async def delete_post(
    post_id: int,
    db: AsyncSession = Depends(get_db),
    index: SearchIndex = Depends(get_search_index),
):
    await post_service.delete_post(db, index, post_id)
    return Response(status_code=204, headers=entity_alert_headers(ENTITY_NAME, "deleted", post_id))


@router.get("/_search/posts", response_model=list[PostResponse])
async def search_posts(
    request: Request,
    response: Response,
    query: str = Query(..., min_length=1, description="Free-text query."),
    pagination: PaginationParams = Depends(),
    index: SearchIndex = Depends(get_search_index),
):
    items, total = await post_service.search_posts(
        index, query, pagination.page, pagination.size, pagination.sort
    )
    response.headers.update(pagination_headers(request.url, pagination.page, pagination.size, total))
    return items
