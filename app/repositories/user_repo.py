from sqlalchemy import select

from app.models.user import Role, User
from app.repositories.base import BaseRepository, Page


class UserRepository(BaseRepository[User]):
    """Users and their role sets."""

    model = User

    async def find_by_username(self, username: str) -> User | None:
        result = await self.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def lock_by_id(self, user_id: int) -> User | None:
        result = await self.execute(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def exists_by_username(self, username: str) -> bool:
        result = await self.execute(select(User.id).where(User.username == username))
        return result.first() is not None

    async def find_all(self, page: int, size: int, order_by) -> Page[User]:
        return await self.find_all_paged(page, size, order_by, User.id)


class RoleRepository(BaseRepository[Role]):
    model = Role

    async def find_by_role_name(self, role_name: str) -> Role | None:
        result = await self.execute(select(Role).where(Role.role_name == role_name))
        return result.scalar_one_or_none()
