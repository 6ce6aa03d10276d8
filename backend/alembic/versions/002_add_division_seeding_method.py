"""Add seeding_method to division

Revision ID: 002_seeding_method
Revises: 001_poolplay
Create Date: 2026-10-19 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "002_seeding_method"
down_revision = "001_poolplay"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("division") as batch_op:
        batch_op.add_column(sa.Column("seeding_method", sa.String(), nullable=False, server_default="rating"))


def downgrade() -> None:
    with op.batch_alter_table("division") as batch_op:
        batch_op.drop_column("seeding_method")
