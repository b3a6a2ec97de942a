"""create_progress_tables

Revision ID: 3f1c9a7d2b60
Revises:
Create Date: 2026-10-19 09:12:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b60'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


member_role_enum = sa.Enum(
    'pathfinder', 'counselor', 'instructor', 'director', 'admin', 'parent',
    name='member_role_enum',
)
group_kind_enum = sa.Enum('class', 'specialty', 'regional_event', name='group_kind_enum')
item_kind_enum = sa.Enum(
    'class_requirement', 'specialty_requirement', 'event_requirement',
    name='item_kind_enum',
)
answer_type_enum = sa.Enum('none', 'text', 'file', 'both', 'quiz', name='answer_type_enum')
item_scope_enum = sa.Enum('global', 'region', 'club', name='item_scope_enum')
progress_status_enum = sa.Enum(
    'not_started', 'pending', 'approved', 'rejected', name='progress_status_enum'
)
completion_status_enum = sa.Enum(
    'in_progress', 'waiting_approval', 'completed', name='completion_status_enum'
)
ledger_source_enum = sa.Enum(
    'requirement', 'specialty', 'activity', 'event', 'manual_adjustment',
    'attendance', 'purchase',
    name='ledger_source_enum',
)
progress_audit_action_enum = sa.Enum(
    'direct_award', 'revoke', 'delete_history', 'reset_balance', 'recompute_drift',
    'manual_adjustment', 'fork_item', 'retire_fork',
    name='progress_audit_action_enum',
)
progress_event_type_enum = sa.Enum(
    'submitted', 'approved', 'rejected', 'revoked', 'specialty_completed',
    'specialty_reopened', 'class_milestone', 'class_completed', 'points_awarded',
    name='progress_event_type_enum',
)


def upgrade() -> None:
    """Upgrade schema - Create club, curriculum, progress and ledger tables."""

    # Club hierarchy
    op.create_table(
        'clubs',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('union', sa.String(), nullable=True),
        sa.Column('mission', sa.String(), nullable=True),
        sa.Column('region', sa.String(), nullable=True),
        sa.Column('district', sa.String(), nullable=True),
        sa.Column('participates_in_ranking', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_clubs'))
    )
    op.create_index('ix_clubs_union', 'clubs', ['union'])
    op.create_index('ix_clubs_mission', 'clubs', ['mission'])
    op.create_index('ix_clubs_region', 'clubs', ['region'])

    op.create_table(
        'units',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('club_id', UUID(as_uuid=True), sa.ForeignKey('clubs.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_units'))
    )
    op.create_index('ix_units_club_id', 'units', ['club_id'])

    op.create_table(
        'members',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('auth_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('club_id', UUID(as_uuid=True), sa.ForeignKey('clubs.id'), nullable=False),
        sa.Column('unit_id', UUID(as_uuid=True), sa.ForeignKey('units.id'), nullable=True),
        sa.Column('role', member_role_enum, nullable=False),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('points_balance', sa.Integer(), server_default='0', nullable=False),
        sa.Column('points_epoch', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_members'))
    )
    op.create_index('ix_members_auth_id', 'members', ['auth_id'], unique=True)
    op.create_index('ix_members_club_id', 'members', ['club_id'])
    op.create_index('ix_members_unit_id', 'members', ['unit_id'])

    # Curriculum
    op.create_table(
        'curriculum_groups',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('kind', group_kind_enum, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('area', sa.String(), nullable=True),
        sa.Column('completion_bonus', sa.Integer(), server_default='0', nullable=False),
        sa.Column('milestone_bonuses', sa.JSON(), nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('union', sa.String(), nullable=True),
        sa.Column('mission', sa.String(), nullable=True),
        sa.Column('region', sa.String(), nullable=True),
        sa.Column('district', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('completion_bonus >= 0', name='ck_group_bonus_non_negative'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_curriculum_groups'))
    )
    op.create_index('ix_curriculum_groups_kind', 'curriculum_groups', ['kind'])

    op.create_table(
        'event_participations',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column(
            'group_id', UUID(as_uuid=True),
            sa.ForeignKey('curriculum_groups.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('club_id', UUID(as_uuid=True), sa.ForeignKey('clubs.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_event_participations')),
        sa.UniqueConstraint('group_id', 'club_id', name='uq_event_participation')
    )
    op.create_index('ix_event_participations_club_id', 'event_participations', ['club_id'])

    op.create_table(
        'assignable_items',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column(
            'group_id', UUID(as_uuid=True), sa.ForeignKey('curriculum_groups.id'), nullable=False
        ),
        sa.Column('kind', item_kind_enum, nullable=False),
        sa.Column('code', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('point_value', sa.Integer(), server_default='0', nullable=False),
        sa.Column('answer_type', answer_type_enum, nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scope', item_scope_enum, nullable=False),
        sa.Column('club_id', UUID(as_uuid=True), sa.ForeignKey('clubs.id'), nullable=True),
        sa.Column('region', sa.String(), nullable=True),
        sa.Column(
            'origin_item_id', UUID(as_uuid=True), sa.ForeignKey('assignable_items.id'), nullable=True
        ),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('point_value >= 0', name='ck_item_points_non_negative'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_assignable_items'))
    )
    op.create_index('ix_assignable_items_group_id', 'assignable_items', ['group_id'])
    op.create_index('ix_assignable_items_club_id', 'assignable_items', ['club_id'])
    op.create_index('ix_assignable_items_origin_item_id', 'assignable_items', ['origin_item_id'])

    op.create_table(
        'item_quiz_questions',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column(
            'item_id', UUID(as_uuid=True),
            sa.ForeignKey('assignable_items.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('position', sa.Integer(), server_default='0', nullable=False),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('options', sa.JSON(), nullable=False),
        sa.Column('correct_option', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_item_quiz_questions'))
    )

    # Progress
    op.create_table(
        'progress_records',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('member_id', UUID(as_uuid=True), sa.ForeignKey('members.id'), nullable=False),
        sa.Column(
            'item_id', UUID(as_uuid=True), sa.ForeignKey('assignable_items.id'), nullable=False
        ),
        sa.Column('status', progress_status_enum, nullable=False),
        sa.Column('answer_text', sa.Text(), nullable=True),
        sa.Column('answer_file_ref', sa.String(), nullable=True),
        sa.Column('quiz_answers', sa.JSON(), nullable=True),
        sa.Column('quiz_score', sa.Float(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('reviewed_by', sa.String(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('grant_entry_id', UUID(as_uuid=True), nullable=True),
        sa.Column('version', sa.Integer(), server_default='1', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_progress_records')),
        sa.UniqueConstraint('member_id', 'item_id', name='uq_progress_member_item')
    )
    op.create_index('ix_progress_records_member_id', 'progress_records', ['member_id'])
    op.create_index('ix_progress_records_item_id', 'progress_records', ['item_id'])

    op.create_table(
        'specialty_completions',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('member_id', UUID(as_uuid=True), sa.ForeignKey('members.id'), nullable=False),
        sa.Column(
            'group_id', UUID(as_uuid=True), sa.ForeignKey('curriculum_groups.id'), nullable=False
        ),
        sa.Column('status', completion_status_enum, nullable=False),
        sa.Column('awarded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('awarded_by', sa.String(), nullable=True),
        sa.Column('awarded_directly', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('bonus_entry_id', UUID(as_uuid=True), nullable=True),
        sa.Column('assigned_by', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_specialty_completions')),
        sa.UniqueConstraint('member_id', 'group_id', name='uq_specialty_member_group')
    )
    op.create_index('ix_specialty_completions_member_id', 'specialty_completions', ['member_id'])
    op.create_index('ix_specialty_completions_group_id', 'specialty_completions', ['group_id'])

    op.create_table(
        'class_milestones',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('member_id', UUID(as_uuid=True), sa.ForeignKey('members.id'), nullable=False),
        sa.Column(
            'group_id', UUID(as_uuid=True), sa.ForeignKey('curriculum_groups.id'), nullable=False
        ),
        sa.Column('milestone', sa.Integer(), server_default='0', nullable=False),
        sa.Column('bonus_entries', sa.JSON(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_class_milestones')),
        sa.UniqueConstraint('member_id', 'group_id', name='uq_class_milestone_member_group')
    )
    op.create_index('ix_class_milestones_member_id', 'class_milestones', ['member_id'])

    # Ledger
    op.create_table(
        'points_ledger_entries',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('member_id', UUID(as_uuid=True), sa.ForeignKey('members.id'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('source', ledger_source_enum, nullable=False),
        sa.Column('reference_type', sa.String(), nullable=True),
        sa.Column('reference_id', sa.String(), nullable=True),
        sa.Column('reverses_entry_id', UUID(as_uuid=True), nullable=True),
        sa.Column('idempotency_key', sa.String(), nullable=True),
        sa.Column('reason', sa.String(), nullable=False),
        sa.Column('epoch', sa.Integer(), server_default='0', nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('amount <> 0', name='ck_ledger_amount_nonzero'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_points_ledger_entries')),
        sa.UniqueConstraint('idempotency_key', name=op.f('uq_points_ledger_entries_idempotency_key'))
    )
    op.create_index('ix_points_ledger_entries_member_id', 'points_ledger_entries', ['member_id'])
    op.create_index('ix_points_ledger_entries_reference_id', 'points_ledger_entries', ['reference_id'])
    op.create_index(
        'ix_points_ledger_entries_reverses_entry_id', 'points_ledger_entries', ['reverses_entry_id']
    )
    op.create_index(
        'ix_points_ledger_member_created', 'points_ledger_entries', ['member_id', 'created_at']
    )

    # Audit trail and event outbox
    op.create_table(
        'progress_audit_logs',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('action', progress_audit_action_enum, nullable=False),
        sa.Column('performed_by', sa.String(), nullable=False),
        sa.Column('member_id', UUID(as_uuid=True), nullable=True),
        sa.Column('target_type', sa.String(), nullable=True),
        sa.Column('target_id', sa.String(), nullable=True),
        sa.Column('old_value', sa.JSON(), nullable=True),
        sa.Column('new_value', sa.JSON(), nullable=True),
        sa.Column('reason', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_progress_audit_logs'))
    )
    op.create_index('ix_progress_audit_logs_action', 'progress_audit_logs', ['action'])
    op.create_index('ix_progress_audit_logs_member_id', 'progress_audit_logs', ['member_id'])

    op.create_table(
        'progress_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_type', progress_event_type_enum, nullable=False),
        sa.Column('member_id', UUID(as_uuid=True), nullable=False),
        sa.Column('item_id', UUID(as_uuid=True), nullable=True),
        sa.Column('group_id', UUID(as_uuid=True), nullable=True),
        sa.Column('event_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_progress_events'))
    )
    op.create_index('ix_progress_events_event_type', 'progress_events', ['event_type'])
    op.create_index('ix_progress_events_member_id', 'progress_events', ['member_id'])


def downgrade() -> None:
    """Downgrade schema - Drop progress tables and enums."""

    op.drop_table('progress_events')
    op.drop_table('progress_audit_logs')
    op.drop_table('points_ledger_entries')
    op.drop_table('class_milestones')
    op.drop_table('specialty_completions')
    op.drop_table('progress_records')
    op.drop_table('item_quiz_questions')
    op.drop_table('assignable_items')
    op.drop_table('event_participations')
    op.drop_table('curriculum_groups')
    op.drop_table('members')
    op.drop_table('units')
    op.drop_table('clubs')

    bind = op.get_bind()
    for enum in (
        progress_event_type_enum,
        progress_audit_action_enum,
        ledger_source_enum,
        completion_status_enum,
        progress_status_enum,
        item_scope_enum,
        answer_type_enum,
        item_kind_enum,
        group_kind_enum,
        member_role_enum,
    ):
        enum.drop(bind, checkfirst=True)
