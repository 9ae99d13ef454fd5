"""Seed a development database with users, articles, comments and votes.

Articles and votes go through the service layer so slugs are generated
and vote counters are derived from the ledger exactly as in production.
"""
import argparse
import asyncio
import random
import time

from articlehub.database import Base, async_session, engine
from articlehub.dependencies import get_asset_manager
from articlehub.errors import AlreadyVoted, Forbidden
from articlehub.models import User
from articlehub.services import article_service, comment_service, votes

TAGS = ["python", "fastapi", "postgresql", "redis", "docker", "testing",
        "performance", "security", "writing", "design"]


async def seed(small: bool = False):
    num_users = 10 if small else 50
    num_articles = 50 if small else 2000
    max_comments = 2 if small else 5
    max_votes = 5 if small else 20

    print(f"Seeding: {num_users} users, {num_articles} articles")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    assets = get_asset_manager()
    total_comments = 0
    total_votes = 0

    async with async_session() as session:
        users = []
        for i in range(num_users):
            user = User(
                username=f"user_{i:04d}",
                email=f"user_{i:04d}@example.com",
                bio=f"I am test user number {i}. I write about technology.",
            )
            session.add(user)
            users.append(user)
        await session.flush()
        print(f"  Created {len(users)} users")

        for i in range(num_articles):
            author = random.choice(users)
            article = await article_service.create_article(
                session,
                assets,
                author,
                title=f"How to optimize {random.choice(TAGS)} applications, part {i}",
                body=f"This is the full content of article {i}. " * 20,
                description=f"Notes on {random.choice(TAGS)} in production.",
                tag_list=random.sample(TAGS, k=random.randint(1, 3)),
            )

            for _ in range(random.randint(0, max_comments)):
                await comment_service.attach(
                    session, article, random.choice(users), "Great article! Very helpful."
                )
                total_comments += 1

            for voter in random.sample(users, k=random.randint(0, min(max_votes, num_users))):
                cast = votes.upvote if random.random() < 0.8 else votes.downvote
                try:
                    await cast(session, voter, article)
                    total_votes += 1
                except (Forbidden, AlreadyVoted):
                    continue

            if (i + 1) % 100 == 0:
                await session.commit()
                print(f"  {i + 1} articles created")

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Users: {num_users}")
    print(f"  Articles: {num_articles}")
    print(f"  Comments: {total_comments}")
    print(f"  Votes: {total_votes}")


def main():
    parser = argparse.ArgumentParser(description="Seed the blog database")
    parser.add_argument("--small", action="store_true", help="Use a small dataset (50 articles)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
