"""notification preferences and reminder log

Revision ID: 4f2a9c1d7e30
Revises:
Create Date: 2026-10-19 09:12:44.118203

"""
from alembic import op
import sqlalchemy as sa

revision = '4f2a9c1d7e30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'notification_preferences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('caretaker_id', sa.String(length=64), nullable=False),
        sa.Column('patient_id', sa.String(length=64), nullable=False),
        sa.Column('email_enabled', sa.Boolean(), nullable=False),
        sa.Column('email_address', sa.String(length=255), nullable=True),
        sa.Column('reminder_time', sa.Time(), nullable=True),
        sa.Column('missed_alerts_enabled', sa.Boolean(), nullable=False),
        sa.Column('missed_alert_delay_hours', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('caretaker_id', 'patient_id', name='uq_notification_pref_caretaker_patient'),
    )
    op.create_index('ix_notification_preferences_caretaker_id', 'notification_preferences', ['caretaker_id'])
    op.create_index('ix_notification_preferences_patient_id', 'notification_preferences', ['patient_id'])

    op.create_table(
        'notification',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('caretaker_id', sa.String(length=64), nullable=False),
        sa.Column('patient_id', sa.String(length=64), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=40), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('delivered', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notification_caretaker_id', 'notification', ['caretaker_id'])
    op.create_index('ix_notification_patient_id', 'notification', ['patient_id'])


def downgrade():
    op.drop_index('ix_notification_patient_id', table_name='notification')
    op.drop_index('ix_notification_caretaker_id', table_name='notification')
    op.drop_table('notification')
    op.drop_index('ix_notification_preferences_patient_id', table_name='notification_preferences')
    op.drop_index('ix_notification_preferences_caretaker_id', table_name='notification_preferences')
    op.drop_table('notification_preferences')
