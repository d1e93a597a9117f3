from sqlalchemy import delete, func, or_, select, update

from app.models.block_request import BlockRequest, BlockRequestStatus
from app.models.card import Card
from app.repositories.base import BaseRepository, Page


class BlockRequestRepository(BaseRepository[BlockRequest]):
    """Block petitions. Listings are newest first."""

    model = BlockRequest

    async def find_by_user(self, user_id: int, page: int, size: int) -> Page[BlockRequest]:
        stmt = (
            select(BlockRequest)
            .where(BlockRequest.user_id == user_id)
            .order_by(BlockRequest.created_at.desc(), BlockRequest.id.desc())
        )
        return await self.paginate(stmt, page, size)

    async def find_by_status(
        self, status: BlockRequestStatus, page: int, size: int
    ) -> Page[BlockRequest]:
        stmt = (
            select(BlockRequest)
            .where(BlockRequest.status == status)
            .order_by(BlockRequest.created_at.desc(), BlockRequest.id.desc())
        )
        return await self.paginate(stmt, page, size)

    async def lock_by_id(self, request_id: int) -> BlockRequest | None:
        """Load one request with a row lock, refreshing any copy already in the session."""
        result = await self.execute(
            select(BlockRequest)
            .where(BlockRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_all(self, page: int, size: int) -> Page[BlockRequest]:
        return await self.find_all_paged(
            page, size, BlockRequest.created_at.desc(), BlockRequest.id.desc()
        )

    async def exists_by_card_and_status(
        self, card_id: int, status: BlockRequestStatus
    ) -> bool:
        result = await self.execute(
            select(BlockRequest.id).where(
                BlockRequest.card_id == card_id,
                BlockRequest.status == status,
            )
        )
        return result.first() is not None

    async def count_by_status(self) -> dict[BlockRequestStatus, int]:
        result = await self.execute(
            select(BlockRequest.status, func.count(BlockRequest.id))
            .group_by(BlockRequest.status)
        )
        counts = {status: 0 for status in BlockRequestStatus}
        counts.update({status: count for status, count in result.all()})
        return counts

    async def delete_by_card(self, card_id: int) -> None:
        await self.execute(delete(BlockRequest).where(BlockRequest.card_id == card_id))

    async def delete_for_user(self, user_id: int) -> None:
        """Remove requests filed by the user or filed against the user's cards."""
        user_cards = select(Card.id).where(Card.user_id == user_id)
        await self.execute(
            delete(BlockRequest).where(
                or_(
                    BlockRequest.user_id == user_id,
                    BlockRequest.card_id.in_(user_cards),
                )
            )
        )
        # Keep processed history of other users; just forget the admin
        await self.execute(
            update(BlockRequest)
            .where(BlockRequest.processed_by_admin_id == user_id)
            .values(processed_by_admin_id=None)
        )
