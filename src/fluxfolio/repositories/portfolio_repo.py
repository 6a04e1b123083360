"""Portfolio repository."""

from sqlalchemy.ext.asyncio import AsyncSession

from fluxfolio.db.models.portfolio import PortfolioRow
from fluxfolio.repositories.base import BaseRepository


class PortfolioRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, PortfolioRow)

    async def get(self, portfolio_id: str) -> PortfolioRow | None:
        return await self.get_by_id("portfolio_id", portfolio_id)

    async def set_allocation(
        self,
        portfolio_id: str,
        user_id: str,
        allocation: dict[str, int],
        bundle_id: str | None = None,
    ) -> PortfolioRow:
        """Upsert the stored allocation (asset id -> basis points)."""
        row = await self.get_by_id("portfolio_id", portfolio_id, for_update=True)
        if row is None:
            return await self.create(
                portfolio_id=portfolio_id,
                user_id=user_id,
                bundle_id=bundle_id,
                allocation=dict(allocation),
            )
        fields: dict = {"allocation": dict(allocation)}
        if bundle_id is not None:
            fields["bundle_id"] = bundle_id
        return await self.update(row, **fields)
