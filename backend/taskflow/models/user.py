"""User model."""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from taskflow.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """A person in the organization hierarchy.

    access_level is ordinal: 0 staff, 1 manager, 2 director, 3 HR/top.
    team_id and department_id scope what managers and directors see in
    listings.
    """

    __tablename__ = "users"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Basic info
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Hierarchy
    access_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    team_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    department_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<User id={self.user_id} level={self.access_level}>"
