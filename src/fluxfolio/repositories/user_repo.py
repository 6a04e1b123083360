"""Repository for User and Session records."""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from fluxfolio.db.models.user import SessionRow, UserRow
from fluxfolio.repositories.base import BaseRepository


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class UserRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, UserRow)

    async def get(self, user_id: str, for_update: bool = False) -> UserRow | None:
        return await self.get_by_id("user_id", user_id, for_update=for_update)

    async def set_portfolio_keys(
        self,
        user: UserRow,
        portfolio_account_id: str,
        sudo_key: str,
        intents_address: str,
    ) -> UserRow:
        return await self.update(
            user,
            portfolio_account_id=portfolio_account_id,
            sudo_key=sudo_key,
            intents_address=intents_address,
        )

    async def set_agent(self, user: UserRow, agent_id: str, agent_pubkey: str) -> UserRow:
        return await self.update(user, agent_id=agent_id, agent_pubkey=agent_pubkey)


class SessionRepository(BaseRepository):
    """Opaque session tokens issued by the passkey login flow."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, SessionRow)

    async def issue(self, user_id: str, ttl_hours: int) -> str:
        """Create a session and return the raw token (only its hash is stored)."""
        token = secrets.token_urlsafe(32)
        await self.create(
            token_hash=hash_token(token),
            user_id=user_id,
            expires_at=datetime.now(timezone.utc) + timedelta(hours=ttl_hours),
        )
        return token

    async def resolve(self, token: str) -> SessionRow | None:
        """Return the live session for a raw token, or None if unknown/expired."""
        row = await self.get_by_id("token_hash", hash_token(token))
        if row is None:
            return None
        expires_at = row.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at < datetime.now(timezone.utc):
            return None
        return row

    async def revoke(self, token: str) -> None:
        row = await self.get_by_id("token_hash", hash_token(token))
        if row is not None:
            await self.session.delete(row)
            await self.session.flush()
