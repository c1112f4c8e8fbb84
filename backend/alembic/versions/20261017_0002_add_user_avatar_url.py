"""Add profile image URL to users."""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

revision: str = "20261017_0002"
down_revision: str | None = "20261017_0001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.add_column(
        "users",
        sa.Column("avatar_url", sa.String(length=1024), nullable=True),
    )


def downgrade() -> None:
    with op.batch_alter_table("users") as batch_op:
        batch_op.drop_column("avatar_url")
