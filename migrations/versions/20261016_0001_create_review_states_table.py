"""Create the review_states table holding per-item scheduling state."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261016_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "review_states",
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("item_id", sa.String(length=128), nullable=False),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ease_factor", sa.Float(), server_default=sa.text("2.5"), nullable=False),
        sa.Column("interval_days", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("repetition_count", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("last_grade", sa.String(length=16), nullable=False),
        sa.Column("last_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("owner_id", "item_id", name="pk_review_states"),
    )
    op.create_index(
        "ix_review_states_owner_id_due_at",
        "review_states",
        ("owner_id", "due_at"),
    )


def downgrade() -> None:
    op.drop_index("ix_review_states_owner_id_due_at", table_name="review_states")
    op.drop_table("review_states")
