"""single-use second factor: open challenge id and last accepted TOTP step

Revision ID: 8c2d4e6f1a3b
Revises: 5e1f0a7c2b9d
Create Date: 2026-03-10 14:20:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8c2d4e6f1a3b'
down_revision = '5e1f0a7c2b9d'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.add_column(sa.Column('totp_last_step', sa.BigInteger(), nullable=True))
        batch_op.add_column(sa.Column('mfa_challenge_id', sa.String(length=64), nullable=True))


def downgrade():
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_column('mfa_challenge_id')
        batch_op.drop_column('totp_last_step')
