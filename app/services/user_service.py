"""
User service — registration, administration and role management.

Registration and admin creation both hash the password with Argon2id and
reject duplicate usernames (UserAlreadyExistsError, 409). Self-registered
users are always enabled with the USER role; administrators choose the
enabled flag.

Disabling a user revokes every refresh token they hold, so existing
sessions cannot mint new access tokens. Access tokens already issued are
rejected by get_current_user, which refuses disabled users.

Deleting a user removes their refresh tokens, block requests (their own
and those filed against their cards) and cards before the user row. This
is done explicitly because SQLite does not enforce ON DELETE CASCADE unless
foreign keys are switched on per connection.
"""

import logging

from app.config import settings
from app.exceptions import RoleNotFoundError, UserAlreadyExistsError, UserNotFoundError
from app.models.user import Role, RoleName, User
from app.repositories.base import Page
from app.repositories.block_request_repo import BlockRequestRepository
from app.repositories.card_repo import CardRepository
from app.repositories.refresh_token_repo import RefreshTokenRepository
from app.repositories.user_repo import RoleRepository, UserRepository
from app.security import hash_password
from app.services.paging import resolve_sort

logger = logging.getLogger(__name__)

USER_SORT_FIELDS = {
    "id": User.id,
    "username": User.username,
    "enabled": User.enabled,
    "createdAt": User.created_at,
}


class UserService:
    def __init__(
        self,
        users: UserRepository,
        roles: RoleRepository,
        cards: CardRepository,
        block_requests: BlockRequestRepository,
        tokens: RefreshTokenRepository,
    ):
        self.users = users
        self.roles = roles
        self.cards = cards
        self.block_requests = block_requests
        self.tokens = tokens

    # ------------------ Creation ------------------ #

    async def register(self, username: str, password: str) -> User:
        """Self-service signup: enabled, USER role only."""
        return await self._create(username, password, enabled=True, role_names=[RoleName.USER.value])

    async def create_user(self, username: str, password: str, enabled: bool = True) -> User:
        """Admin-created user with the USER role and the requested enabled flag."""
        return await self._create(username, password, enabled=enabled, role_names=[RoleName.USER.value])

    async def _create(
        self, username: str, password: str, enabled: bool, role_names: list[str]
    ) -> User:
        if await self.users.exists_by_username(username):
            raise UserAlreadyExistsError(username)

        roles = [await self._resolve_role(name) for name in role_names]
        user = User(
            username=username,
            hashed_password=hash_password(password),
            enabled=enabled,
            roles=roles,
        )
        await self.users.save(user)
        logger.info("Created user %s (enabled=%s, roles=%s)", username, enabled, role_names)
        return user

    async def _resolve_role(self, role_name: str) -> Role:
        role = await self.roles.find_by_role_name(role_name)
        if role is None:
            raise RoleNotFoundError(role_name)
        return role

    # ------------------ Reads ------------------ #

    async def get_by_username(self, username: str) -> User:
        user = await self.users.find_by_username(username)
        if user is None:
            raise UserNotFoundError(username)
        return user

    async def get_by_id(self, user_id: int) -> User:
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))
        return user

    async def list_users(
        self, page: int, size: int, sort_by: str = "id", sort_direction: str = "asc"
    ) -> Page[User]:
        order_by = resolve_sort(USER_SORT_FIELDS, sort_by, sort_direction)
        return await self.users.find_all(page, size, order_by)

    # ------------------ Updates ------------------ #

    async def update_roles(self, username: str, role_names: list[str]) -> User:
        """Replace the user's role set. Any unknown role name aborts the update."""
        user = await self.get_by_username(username)
        roles = [await self._resolve_role(name) for name in sorted(set(role_names))]
        user.roles = roles
        await self.users.flush()
        logger.info("Roles of %s set to %s", username, [r.role_name for r in roles])
        return user

    async def toggle_status(self, username: str) -> User:
        """Flip the enabled flag; disabling revokes all of the user's sessions."""
        user = await self.get_by_username(username)
        user.enabled = not user.enabled
        await self.users.flush()

        if not user.enabled:
            revoked = await self.tokens.revoke_all_by_user(user.id)
            logger.info("Disabled user %s and revoked %d session(s)", username, revoked)
        else:
            logger.info("Enabled user %s", username)
        return user

    async def delete_user(self, username: str) -> None:
        user = await self.get_by_username(username)
        await self.tokens.delete_by_user(user.id)
        await self.block_requests.delete_for_user(user.id)
        await self.cards.delete_by_user(user.id)
        await self.users.delete(user)
        logger.info("Deleted user %s", username)

    # ------------------ Startup seeding ------------------ #

    async def ensure_default_roles(self) -> None:
        for role_name in RoleName:
            if await self.roles.find_by_role_name(role_name.value) is None:
                await self.roles.save(Role(role_name=role_name.value, enabled=True))
                logger.info("Seeded role %s", role_name.value)

    async def ensure_bootstrap_admin(self) -> None:
        """Create the ADMIN_USERNAME account (USER + ADMIN roles) if configured and missing."""
        if not settings.ADMIN_USERNAME or not settings.ADMIN_PASSWORD:
            return
        if await self.users.exists_by_username(settings.ADMIN_USERNAME):
            return
        await self._create(
            settings.ADMIN_USERNAME,
            settings.ADMIN_PASSWORD,
            enabled=True,
            role_names=[RoleName.USER.value, RoleName.ADMIN.value],
        )
