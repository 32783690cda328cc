"""Sales ORM models.

Four tables back the analytics layer:
- app_user: sales people (name, role)
- sales_group: teams a user can belong to
- user_group: many-to-many membership between users and groups
- sale: one row per sale (user, amount, date)
"""

import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class CreatedAtMixin:
    """Row creation timestamp, set by the database."""

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class User(CreatedAtMixin, Base):
    """Sales person.

    Attributes:
        id: Primary key.
        name: Display name.
        role: Job role (e.g., "account_executive").
    """

    __tablename__ = "app_user"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    role: Mapped[str | None] = mapped_column(String(50), nullable=True)

    sales: Mapped[list["Sale"]] = relationship(back_populates="user")
    groups: Mapped[list["Group"]] = relationship(
        secondary="user_group",
        back_populates="users",
    )


class Group(CreatedAtMixin, Base):
    """Team of sales people."""

    __tablename__ = "sales_group"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)

    users: Mapped[list[User]] = relationship(
        secondary="user_group",
        back_populates="groups",
    )


class UserGroup(Base):
    """Membership of a user in a group."""

    __tablename__ = "user_group"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("app_user.id", ondelete="CASCADE"),
        primary_key=True,
    )
    group_id: Mapped[int] = mapped_column(
        ForeignKey("sales_group.id", ondelete="CASCADE"),
        primary_key=True,
    )

    __table_args__ = (
        Index("ix_user_group_user", "user_id"),
        Index("ix_user_group_group", "group_id"),
    )


class Sale(CreatedAtMixin, Base):
    """Sale fact row.

    Attributes:
        id: Primary key.
        user_id: Seller (FK to app_user).
        amount: Sale amount, strictly positive.
        date: Day the sale was booked.
    """

    __tablename__ = "sale"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("app_user.id"))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    date: Mapped[datetime.date] = mapped_column(Date)

    user: Mapped[User] = relationship(back_populates="sales")

    __table_args__ = (
        Index("ix_sale_amount", "amount"),
        CheckConstraint("amount > 0", name="ck_sale_amount_positive"),
    )


# Descending date indexes serve "latest first" listings and MAX(date) lookups.
Index("ix_sale_user_date", Sale.user_id, Sale.date.desc())
Index("ix_sale_date", Sale.date.desc())
