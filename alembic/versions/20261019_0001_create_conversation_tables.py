"""create conversation tables

Revision ID: 20261019_0001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""

from alembic import op

from waitroom.models import Conversation, Message, Summary


# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    for model in (Conversation, Message, Summary):
        model.__table__.create(bind=bind, checkfirst=True)


def downgrade() -> None:
    bind = op.get_bind()
    for model in (Summary, Message, Conversation):
        model.__table__.drop(bind=bind, checkfirst=True)
