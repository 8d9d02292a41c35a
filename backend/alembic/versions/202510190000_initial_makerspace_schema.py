"""initial_makerspace_schema

Revision ID: 202510190000
Revises:
Create Date: 2025-10-19 00:00:00.000000

Baseline schema: users, resources and groups, usage sessions, introductions
with their revoke history, introducer grants, and the MQTT and webhook
notification settings.
"""
from typing import Sequence, Union

from alembic import op

# Import all models to ensure they're registered with Base.metadata
from core.database import Base
import models  # noqa: F401


# revision identifiers, used by Alembic.
revision: str = '202510190000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create all tables from the SQLAlchemy models.

    This includes the partial unique index uq_usage_sessions_active_resource
    (resource_id WHERE end_time IS NULL), which allows at most one active
    session per resource.
    """
    Base.metadata.create_all(bind=op.get_bind())

    op.create_check_constraint(
        'check_introduction_history_action',
        'introduction_history_items',
        "action IN ('revoke', 'unrevoke')"
    )

    op.create_check_constraint(
        'check_webhook_method',
        'webhook_configs',
        "method IN ('GET', 'POST', 'PUT', 'PATCH', 'DELETE')"
    )


def downgrade() -> None:
    """Drop all tables created by the baseline."""
    Base.metadata.drop_all(bind=op.get_bind())
