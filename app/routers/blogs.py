from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import get_current_login
from app.schemas import BlogCreate, BlogResponse
from app.services import user_service

router = APIRouter(prefix="/api/blogs", tags=["blogs"])

@router.get("", response_model=list[BlogResponse])
async def list_blogs(login: str | None = Depends(get_current_login), db: AsyncSession = Depends(get_db)):
    return await user_service.get_blogs(db, login)

@router.post("", status_code=201, response_model=BlogResponse)
async def create_blog(
    data: BlogCreate,
    login: str | None = Depends(get_current_login),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.create_blog(db, login, data)
