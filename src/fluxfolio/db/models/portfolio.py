"""Portfolio table."""

from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from fluxfolio.db.base import Base, TimestampMixin


class PortfolioRow(Base, TimestampMixin):
    __tablename__ = "portfolios"

    portfolio_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=False, index=True)
    bundle_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    # asset id -> basis points (percentage * 100)
    allocation: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
