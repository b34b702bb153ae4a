"""MRP what-if runs.

- mrp_runs.simulation_mode: requirements of a simulated run are written as
  not current and never supersede the live plan.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5e2a9c4d1f63"
down_revision: Union[str, None] = "3c1d8e5a7b20"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("mrp_runs") as batch:
        batch.add_column(
            sa.Column("simulation_mode", sa.Boolean(), nullable=False, server_default=sa.false())
        )


def downgrade() -> None:
    with op.batch_alter_table("mrp_runs") as batch:
        batch.drop_column("simulation_mode")
