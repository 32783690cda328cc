"""create_sales_tables

Revision ID: 3c1e7a9b5d20
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1e7a9b5d20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    """Apply migration - create user, group, membership and sale tables."""
    op.create_table(
        "app_user",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("role", sa.String(length=50), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "sales_group",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "user_group",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["app_user.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["group_id"], ["sales_group.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "group_id"),
    )
    op.create_index("ix_user_group_user", "user_group", ["user_id"])
    op.create_index("ix_user_group_group", "user_group", ["group_id"])

    op.create_table(
        "sale",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["user_id"], ["app_user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount > 0", name="ck_sale_amount_positive"),
    )
    op.create_index("ix_sale_amount", "sale", ["amount"])
    op.create_index("ix_sale_user_date", "sale", ["user_id", sa.text("date DESC")])
    op.create_index("ix_sale_date", "sale", [sa.text("date DESC")])


def downgrade() -> None:
    """Revert migration - drop sales tables."""
    op.drop_index("ix_sale_date", table_name="sale")
    op.drop_index("ix_sale_user_date", table_name="sale")
    op.drop_index("ix_sale_amount", table_name="sale")
    op.drop_table("sale")

    op.drop_index("ix_user_group_group", table_name="user_group")
    op.drop_index("ix_user_group_user", table_name="user_group")
    op.drop_table("user_group")

    op.drop_table("sales_group")
    op.drop_table("app_user")
