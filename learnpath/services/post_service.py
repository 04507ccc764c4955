"""Read-only lookups over blog posts."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.models import Post
from learnpath.schemas.roadmap import PostStatus


async def list_published_posts(db: AsyncSession) -> list[Post]:
    """Posts that may be offered for linking, newest first."""
    result = await db.execute(
        select(Post)
        .where(Post.status == PostStatus.PUBLISHED.value)
        .order_by(Post.published_at.desc(), Post.created_at.desc())
    )
    return list(result.scalars().all())
