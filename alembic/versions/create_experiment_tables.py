"""Create users, experiments, check_ins and reflections tables

Revision ID: experiments_001
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'experiments_001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('tier', sa.String(), nullable=False, server_default='free'),
        sa.Column('reminder_time', sa.Time(), nullable=False, server_default='20:00:00'),
        sa.Column('notification_token', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_tier'), 'users', ['tier'], unique=False)

    op.create_table('experiments',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('duration_value', sa.Integer(), nullable=False),
        sa.Column('duration_unit', sa.Enum('DAYS', 'WEEKS', 'MONTHS', name='durationunit'), nullable=False),
        sa.Column('duration_days', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'COMPLETED', name='experimentstatus'), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('source_experiment_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('duration_days > 0', name='ck_experiments_duration_positive'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['source_experiment_id'], ['experiments.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_experiments_id'), 'experiments', ['id'], unique=False)
    op.create_index(op.f('ix_experiments_user_id'), 'experiments', ['user_id'], unique=False)
    op.create_index(op.f('ix_experiments_start_date'), 'experiments', ['start_date'], unique=False)
    op.create_index(op.f('ix_experiments_status'), 'experiments', ['status'], unique=False)

    op.create_table('check_ins',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('experiment_id', sa.String(), nullable=False),
        sa.Column('check_in_date', sa.Date(), nullable=False),
        sa.Column('completed', sa.Boolean(), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['experiment_id'], ['experiments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('experiment_id', 'check_in_date', name='uq_check_ins_experiment_date')
    )
    op.create_index(op.f('ix_check_ins_id'), 'check_ins', ['id'], unique=False)
    op.create_index(op.f('ix_check_ins_experiment_id'), 'check_ins', ['experiment_id'], unique=False)
    op.create_index(op.f('ix_check_ins_check_in_date'), 'check_ins', ['check_in_date'], unique=False)

    op.create_table('reflections',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('experiment_id', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_end', sa.Boolean(), nullable=False),
        sa.Column('next_action', sa.Enum('CONTINUE', 'MODIFY', 'END', name='nextaction'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['experiment_id'], ['experiments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_reflections_id'), 'reflections', ['id'], unique=False)
    op.create_index(op.f('ix_reflections_experiment_id'), 'reflections', ['experiment_id'], unique=False)
    op.create_index(op.f('ix_reflections_created_at'), 'reflections', ['created_at'], unique=False)
    # At most one end reflection per experiment
    op.create_index(
        'uq_reflections_one_end_per_experiment', 'reflections', ['experiment_id'],
        unique=True, postgresql_where=sa.text('is_end'), sqlite_where=sa.text('is_end')
    )


def downgrade():
    op.drop_index('uq_reflections_one_end_per_experiment', table_name='reflections')
    op.drop_index(op.f('ix_reflections_created_at'), table_name='reflections')
    op.drop_index(op.f('ix_reflections_experiment_id'), table_name='reflections')
    op.drop_index(op.f('ix_reflections_id'), table_name='reflections')
    op.drop_table('reflections')

    op.drop_index(op.f('ix_check_ins_check_in_date'), table_name='check_ins')
    op.drop_index(op.f('ix_check_ins_experiment_id'), table_name='check_ins')
    op.drop_index(op.f('ix_check_ins_id'), table_name='check_ins')
    op.drop_table('check_ins')

    op.drop_index(op.f('ix_experiments_status'), table_name='experiments')
    op.drop_index(op.f('ix_experiments_start_date'), table_name='experiments')
    op.drop_index(op.f('ix_experiments_user_id'), table_name='experiments')
    op.drop_index(op.f('ix_experiments_id'), table_name='experiments')
    op.drop_table('experiments')

    op.drop_index(op.f('ix_users_tier'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_index(op.f('ix_users_id'), table_name='users')
    op.drop_table('users')

    sa.Enum(name='nextaction').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='experimentstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='durationunit').drop(op.get_bind(), checkfirst=True)
