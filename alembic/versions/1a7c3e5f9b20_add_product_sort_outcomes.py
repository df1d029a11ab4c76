"""add_product_sort_outcomes

Revision ID: 1a7c3e5f9b20
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "1a7c3e5f9b20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "product_sort_outcomes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("run_id", sa.String(length=100), nullable=False),
        sa.Column("product_id", sa.String(length=200), nullable=False),
        sa.Column("product_title", sa.Text(), nullable=False),
        sa.Column("final_state", sa.String(length=50), nullable=False),
        sa.Column("abort_reason", sa.String(length=50), nullable=True),
        sa.Column("options_status", sa.String(length=30), nullable=False),
        sa.Column("variants_status", sa.String(length=30), nullable=False),
        sa.Column("images_status", sa.String(length=30), nullable=False),
        sa.Column("dry_run", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("detail_json", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index(op.f("ix_product_sort_outcomes_run_id"), "product_sort_outcomes", ["run_id"], unique=False)
    op.create_index(
        op.f("ix_product_sort_outcomes_product_id"), "product_sort_outcomes", ["product_id"], unique=False
    )
    op.create_index(
        op.f("ix_product_sort_outcomes_final_state"), "product_sort_outcomes", ["final_state"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_product_sort_outcomes_final_state"), table_name="product_sort_outcomes")
    op.drop_index(op.f("ix_product_sort_outcomes_product_id"), table_name="product_sort_outcomes")
    op.drop_index(op.f("ix_product_sort_outcomes_run_id"), table_name="product_sort_outcomes")
    op.drop_table("product_sort_outcomes")
