"""Seed the blog database with users, tagged posts, comments and interactions."""
import argparse
import asyncio
import logging
import random
import time
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from blog_api.config import configure_logging
from blog_api.database import Base, async_session, engine
from blog_api.models import Comment, Interaction, Post, Tag, User
from blog_api.services.post_service import derive_excerpt

logger = logging.getLogger("blog_api.seed")

TAGS = ["python", "fastapi", "postgresql", "redis", "docker", "rust",
        "react", "typescript", "aws", "devops", "testing", "performance",
        "security", "async", "web", "design"]

TOPICS = ["caching", "pagination", "search", "indexes", "concurrency", "deployments"]


async def seed(small: bool = False):
    num_users = 10 if small else 50
    num_posts = 100 if small else 5000
    max_comments_per_post = 2 if small else 5
    max_likes_per_post = 5 if small else 40

    logger.info("Seeding %d users, %d posts", num_users, num_posts)
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        tags = [Tag(name=name) for name in TAGS]
        session.add_all(tags)

        users = [
            User(
                username=f"user_{i:04d}",
                email=f"user_{i:04d}@example.com",
                display_name=f"User {i}",
                bio=f"Test author number {i}.",
            )
            for i in range(num_users)
        ]
        session.add_all(users)
        await session.flush()
        user_ids = [u.id for u in users]

        batch_size = 500
        totals = {"comments": 0, "like": 0, "bookmark": 0}
        for batch_start in range(0, num_posts, batch_size):
            batch_end = min(batch_start + batch_size, num_posts)
            batch: list[Post] = []
            for i in range(batch_start, batch_end):
                created = datetime.now(timezone.utc) - timedelta(days=random.randint(0, 365))
                topic = random.choice(TOPICS)
                content = f"Notes on {topic} in post {i}. " * random.randint(20, 600)
                published = random.random() > 0.1
                post = Post(
                    title=f"Post {i}: practical {topic}",
                    content=content,
                    excerpt=derive_excerpt(content),
                    excerpt_auto=True,
                    is_published=published,
                    published_at=created if published else None,
                    created_at=created,
                    updated_at=created,
                    author_id=random.choice(user_ids),
                )
                post.tags = random.sample(tags, k=random.randint(0, 5))
                batch.append(post)
            session.add_all(batch)
            await session.flush()

            for post in batch:
                for _ in range(random.randint(0, max_comments_per_post)):
                    session.add(Comment(
                        text=f"Useful write-up on {random.choice(TOPICS)}.",
                        post_id=post.id,
                        author_id=random.choice(user_ids),
                    ))
                    totals["comments"] += 1
                for kind in ("like", "bookmark"):
                    k = min(len(user_ids), random.randint(0, max_likes_per_post))
                    for user_id in random.sample(user_ids, k=k):
                        session.add(Interaction(user_id=user_id, post_id=post.id, kind=kind))
                    totals[kind] += k
            await session.flush()
            logger.info("Posts %d-%d created", batch_start, batch_end)

        await session.commit()

        published = (await session.execute(
            select(Post.id).where(Post.is_published.is_(True))
        )).scalars().all()

    logger.info(
        "Seeding complete in %.1fs: users=%d posts=%d published=%d comments=%d likes=%d bookmarks=%d",
        time.perf_counter() - start,
        num_users,
        num_posts,
        len(published),
        totals["comments"],
        totals["like"],
        totals["bookmark"],
    )
    await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Seed the blog database")
    parser.add_argument("--small", action="store_true", help="Use a small dataset (100 posts)")
    args = parser.parse_args()
    configure_logging()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
