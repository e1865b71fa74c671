"""Book tags."""

from collections import defaultdict

from sqlalchemy import select

from rsywx.core.logging import get_logger
from rsywx.models.activity import Tag
from rsywx.repositories.base import BaseRepository

logger = get_logger(__name__)


class TagRepository(BaseRepository):
    """Read and append ``book_taglist`` rows."""

    async def get_tags(self, book_id: int) -> list[str]:
        """Tags of one book, alphabetical."""
        result = await self.session.execute(
            select(Tag.tag).where(Tag.bid == book_id).order_by(Tag.tag)
        )
        return list(result.scalars().all())

    async def get_tags_many(self, book_ids: list[int]) -> dict[int, list[str]]:
        """Tags for several books, each list alphabetical.

        Books without tags map to an empty list.
        """
        tags: dict[int, list[str]] = defaultdict(list)
        if not book_ids:
            return {}

        result = await self.session.execute(
            select(Tag.bid, Tag.tag)
            .where(Tag.bid.in_(list(dict.fromkeys(book_ids))))
            .order_by(Tag.bid, Tag.tag)
        )
        for bid, tag in result.all():
            tags[int(bid)].append(tag)
        return {book_id: tags.get(book_id, []) for book_id in book_ids}

    async def add_tags(self, book_id: int, tags: list[str]) -> tuple[list[str], list[str]]:
        """Attach tags to a book, skipping ones it already has.

        Tags repeated within ``tags`` count as duplicates after the first.
        The insert is committed before returning.

        Args:
            book_id: Internal book id
            tags: Cleaned tag strings

        Returns:
            Tuple of (added, duplicates), each in submission order
        """
        existing = set(await self.get_tags(book_id))
        added: list[str] = []
        duplicates: list[str] = []

        for tag in tags:
            if tag in existing:
                duplicates.append(tag)
                continue
            existing.add(tag)
            added.append(tag)

        if added:
            self.session.add_all([Tag(bid=book_id, tag=tag) for tag in added])
            await self.session.flush()
            await self.session.commit()
            logger.info("tags_added", book_id=book_id, added=added)

        return added, duplicates
