"""
User and blog service: the owners that post listings are filtered by.

Uniqueness of login/email is enforced by the database; the router turns
the resulting ``IntegrityError`` into a 409.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import InvalidRequest, NotFound
from app.models import Blog, User
from app.schemas import BlogCreate, UserCreate


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "login": user.login,
        "email": user.email,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _blog_to_dict(blog: Blog) -> dict:
    return {"id": blog.id, "name": blog.name, "handle": blog.handle, "user_id": blog.user_id}


async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    user = User(login=data.login, email=data.email)
    db.add(user)
    await db.flush()
    await db.refresh(user, ["created_at"])
    return _user_to_dict(user)


async def get_user(db: AsyncSession, user_id: int) -> dict:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User", user_id)
    return _user_to_dict(user)


async def _find_user(db: AsyncSession, login: str | None) -> User | None:
    if login is None:
        return None
    result = await db.execute(select(User).where(User.login == login))
    return result.scalar_one_or_none()


async def create_blog(db: AsyncSession, login: str | None, data: BlogCreate) -> dict:
    """Create a blog owned by the principal *login*, who must be a known user."""
    user = await _find_user(db, login)
    if user is None:
        raise InvalidRequest("Current user is not registered", "blog", "nouser")
    blog = Blog(name=data.name, handle=data.handle, user_id=user.id)
    db.add(blog)
    await db.flush()
    return _blog_to_dict(blog)


async def get_blogs(db: AsyncSession, login: str | None) -> list[dict]:
    """Return the blogs owned by *login*, oldest first."""
    if login is None:
        return []
    result = await db.execute(
        select(Blog).join(User, Blog.user_id == User.id).where(User.login == login).order_by(Blog.id)
    )
    return [_blog_to_dict(b) for b in result.scalars().all()]
