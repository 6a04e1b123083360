"""SQLAlchemy ORM models - import all to register with Base.metadata."""

from fluxfolio.db.models.user import SessionRow, UserRow
from fluxfolio.db.models.job import JobRow
from fluxfolio.db.models.portfolio import PortfolioRow

__all__ = [
    "UserRow",
    "SessionRow",
    "JobRow",
    "PortfolioRow",
]
