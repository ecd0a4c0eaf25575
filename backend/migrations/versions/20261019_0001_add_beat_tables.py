"""Add beat duty tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision = 'a1b2c3d4e5f6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Beats
    op.create_table('beat',
        sa.Column('beat_id', UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('address', sa.Text, nullable=True),
        sa.Column('center_lat', sa.Float, nullable=False),
        sa.Column('center_lng', sa.Float, nullable=False),
        sa.Column('radius_m', sa.Float, nullable=False),
        sa.Column('province', sa.String(length=100), nullable=True),
        sa.Column('unit', sa.String(length=100), nullable=True),
        sa.Column('sub_unit', sa.String(length=100), nullable=True),
        sa.Column('duty_start', sa.Time, nullable=False),
        sa.Column('duty_end', sa.Time, nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('violation_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime, nullable=True),
        sa.Column('scheduled_end_at', sa.DateTime, nullable=True),
        sa.Column('completed_at', sa.DateTime, nullable=True),
        sa.Column('created_by', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime, nullable=True),
        sa.CheckConstraint('radius_m > 0', name='ck_beat_radius_positive'),
    )
    op.create_index('ix_beat_status', 'beat', ['status'])
    op.create_index('ix_beat_scope', 'beat', ['province', 'unit', 'sub_unit'])

    # Per-personnel acceptance rows
    op.create_table('beat_assignment',
        sa.Column('assignment_id', UUID(as_uuid=True), primary_key=True),
        sa.Column('beat_id', UUID(as_uuid=True), sa.ForeignKey('beat.beat_id'), nullable=False),
        sa.Column('personnel_id', UUID(as_uuid=True), nullable=False),
        sa.Column('slot', sa.Integer, nullable=False),
        sa.Column('acceptance_status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('responded_at', sa.DateTime, nullable=True),
        sa.Column('decline_reason', sa.Text, nullable=True),
        sa.Column('assigned_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('removed_at', sa.DateTime, nullable=True),
    )
    op.create_index(
        'uq_beat_assignment_current',
        'beat_assignment',
        ['beat_id', 'personnel_id'],
        unique=True,
        postgresql_where=sa.text('removed_at IS NULL'),
    )

    # Exit violations
    op.create_table('beat_violation',
        sa.Column('violation_id', UUID(as_uuid=True), primary_key=True),
        sa.Column('beat_id', UUID(as_uuid=True), sa.ForeignKey('beat.beat_id'), nullable=False),
        sa.Column('personnel_id', UUID(as_uuid=True), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False, server_default='exit'),
        sa.Column('fix_timestamp', sa.DateTime, nullable=False),
        sa.Column('location_lat', sa.Float, nullable=False),
        sa.Column('location_lng', sa.Float, nullable=False),
        sa.Column('distance_from_center_m', sa.Float, nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('acknowledged_at', sa.DateTime, nullable=True),
        sa.Column('acknowledged_by', UUID(as_uuid=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime, nullable=True),
        sa.Column('resolved_by', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_beat_violation_beat_status', 'beat_violation', ['beat_id', 'status'])

    # Replacement ledger
    op.create_table('personnel_replacement_history',
        sa.Column('record_id', UUID(as_uuid=True), primary_key=True),
        sa.Column('beat_id', UUID(as_uuid=True), sa.ForeignKey('beat.beat_id'), nullable=False),
        sa.Column('old_personnel_id', UUID(as_uuid=True), nullable=True),
        sa.Column('new_personnel_id', UUID(as_uuid=True), nullable=True),
        sa.Column('reason', sa.Text, nullable=False),
        sa.Column('replaced_at', sa.DateTime, nullable=False),
        sa.Column('recorded_by', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            'old_personnel_id IS NOT NULL OR new_personnel_id IS NOT NULL',
            name='ck_replacement_has_personnel',
        ),
    )
    op.create_index(
        'ix_replacement_beat_replaced_at',
        'personnel_replacement_history',
        ['beat_id', 'replaced_at'],
    )

    # Audit events
    op.create_table('event_log',
        sa.Column('event_id', UUID(as_uuid=True), primary_key=True),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', UUID(as_uuid=True), nullable=False),
        sa.Column('operation', sa.String(length=100), nullable=False),
        sa.Column('before_json', JSONB, nullable=True),
        sa.Column('after_json', JSONB, nullable=True),
        sa.Column('actor_id', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('correlation_id', sa.String(length=100), nullable=True),
    )
    op.create_index('ix_event_log_entity', 'event_log', ['entity_type', 'entity_id'])


def downgrade():
    op.drop_index('ix_event_log_entity', table_name='event_log')
    op.drop_table('event_log')

    op.drop_index('ix_replacement_beat_replaced_at', table_name='personnel_replacement_history')
    op.drop_table('personnel_replacement_history')

    op.drop_index('ix_beat_violation_beat_status', table_name='beat_violation')
    op.drop_table('beat_violation')

    op.drop_index('uq_beat_assignment_current', table_name='beat_assignment')
    op.drop_table('beat_assignment')

    op.drop_index('ix_beat_scope', table_name='beat')
    op.drop_index('ix_beat_status', table_name='beat')
    op.drop_table('beat')
