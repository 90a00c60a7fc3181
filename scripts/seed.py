"""Database seeder: users, blogs, tagged posts, mirrored into the search index."""
import asyncio
import argparse
import random
import time
from datetime import datetime, timezone, timedelta

from app.database import engine, async_session, Base
from app.models import Blog, Post, Tag, User
from app.exceptions import IndexPropagationError
from app.search import search_index
from app.services import reindex_service

TAGS = ["python", "fastapi", "postgresql", "redis", "docker", "kubernetes",
        "elasticsearch", "typescript", "aws", "devops", "testing", "performance",
        "security", "microservices", "graphql", "rest-api"]


async def seed(small: bool = False):
    num_users = 5 if small else 50
    num_posts = 100 if small else 5000

    print(f"Seeding: {num_users} users (one blog each), {num_posts} posts")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        tags = [Tag(name=name) for name in TAGS]
        session.add_all(tags)
        await session.flush()
        print(f"  Created {len(tags)} tags")

        blogs = []
        for i in range(num_users):
            user = User(login=f"user_{i:04d}", email=f"user_{i:04d}@example.com")
            session.add(user)
            await session.flush()
            blog = Blog(name=f"Blog of user {i}", handle=f"blog{i:04d}", user_id=user.id)
            session.add(blog)
            blogs.append(blog)
        await session.flush()
        print(f"  Created {len(blogs)} users and blogs")

        batch_size = 500
        for batch_start in range(0, num_posts, batch_size):
            batch_end = min(batch_start + batch_size, num_posts)
            for i in range(batch_start, batch_end):
                topic = random.choice(TAGS)
                post = Post(
                    title=f"Post {i}: notes on {topic}",
                    content=f"This is the full content of post {i} about {topic}. " * 10,
                    date=datetime.now(timezone.utc) - timedelta(days=random.randint(0, 365)),
                    blog_id=random.choice(blogs).id,
                )
                post.tags = random.sample(tags, k=random.randint(1, 4))
                session.add(post)
            await session.flush()
            print(f"  Batch {batch_start}-{batch_end}: posts created")

        await session.commit()

    await search_index.connect()
    indexed = 0
    try:
        async with async_session() as session:
            indexed = await reindex_service.reindex_all(session, search_index)
    except IndexPropagationError as exc:
        print(f"  Search index not updated ({exc.message}); run scripts/reindex.py --all later")
    finally:
        await search_index.disconnect()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Posts: {num_posts} ({indexed} indexed)")
    print(f"  Tags: {len(TAGS)}")


def main():
    parser = argparse.ArgumentParser(description="Seed the blog database and search index")
    parser.add_argument("--small", action="store_true", help="Use small dataset (100 posts)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
