"""add whatsapp flow templates

Revision ID: add_flows_001
Revises: 
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'add_flows_001'
down_revision = None
branch_labels = None
depends_on = None

FLOW_CATEGORIES = (
    'LEAD_GENERATION', 'LEAD_QUALIFICATION', 'APPOINTMENT_BOOKING', 'SLOT_BOOKING',
    'ORDER_PLACEMENT', 'RE_ORDERING', 'CUSTOMER_SUPPORT', 'TICKET_CREATION',
    'PAYMENTS', 'COLLECTIONS', 'REGISTRATIONS', 'APPLICATIONS',
    'DELIVERY_UPDATES', 'ADDRESS_CAPTURE', 'FEEDBACK', 'SURVEYS',
)

ENUM_TYPES = (
    'flowcategory', 'flowtemplatestatus', 'metaflowstatus', 'flowversionstatus',
    'flowsubmissionstatus', 'flowsubmissionsource',
)


def _common_columns():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def _common_indexes(table):
    op.create_index(f'ix_{table}_id', table, ['id'])
    op.create_index(f'ix_{table}_tenant_id', table, ['tenant_id'])


def upgrade():
    # Flow templates
    op.create_table(
        'flow_templates',
        *_common_columns(),
        sa.Column('external_id', sa.String(length=36), nullable=False),
        sa.Column('business_account_id', sa.String(length=64), nullable=False),
        sa.Column('app_id', sa.String(length=64), nullable=False),
        sa.Column('meta_flow_id', sa.String(length=64), nullable=True),

        sa.Column('template_key', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.Enum(*FLOW_CATEGORIES, name='flowcategory'), nullable=False),

        sa.Column('status', sa.Enum('DRAFT', 'PUBLISHED', 'ARCHIVED', name='flowtemplatestatus'), nullable=False),
        sa.Column(
            'meta_status',
            sa.Enum('DRAFT', 'PUBLISHED', 'DEPRECATED', 'THROTTLED', 'BLOCKED', name='metaflowstatus'),
            nullable=True,
        ),
        sa.Column('meta_status_updated_at', sa.DateTime(), nullable=True),

        sa.Column('current_draft_version_id', sa.Integer(), nullable=True),
        sa.Column('current_published_version_id', sa.Integer(), nullable=True),

        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('updated_by', sa.String(length=100), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),

        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'tenant_id', 'business_account_id', 'app_id', 'template_key',
            name='uk_flow_template_tenant_key',
        ),
    )
    _common_indexes('flow_templates')
    op.create_index('ix_flow_templates_external_id', 'flow_templates', ['external_id'], unique=True)
    op.create_index('ix_flow_templates_meta_flow_id', 'flow_templates', ['meta_flow_id'])

    # Versions
    op.create_table(
        'flow_versions',
        *_common_columns(),
        sa.Column('external_id', sa.String(length=36), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('DRAFT', 'PUBLISHED', 'ARCHIVED', 'REJECTED', name='flowversionstatus'),
            nullable=False,
        ),
        sa.Column('webhook_mapping', sa.JSON(), nullable=True),
        sa.Column('response_schema', sa.JSON(), nullable=True),
        sa.Column('approval_notes', sa.Text(), nullable=True),
        sa.Column('published_at', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('approved_by', sa.String(length=100), nullable=True),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['template_id'], ['flow_templates.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('template_id', 'version_number', name='uk_flow_version_number'),
    )
    _common_indexes('flow_versions')
    op.create_index('ix_flow_versions_external_id', 'flow_versions', ['external_id'], unique=True)
    op.create_index('ix_flow_versions_template_id', 'flow_versions', ['template_id'])

    # Screens
    op.create_table(
        'flow_screens',
        *_common_columns(),
        sa.Column('external_id', sa.String(length=36), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('screen_key', sa.String(length=128), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False),
        sa.Column('is_entry_point', sa.Boolean(), nullable=False),
        sa.Column('settings', sa.JSON(), nullable=True),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['version_id'], ['flow_versions.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('external_id'),
        sa.UniqueConstraint('version_id', 'screen_key', name='uk_flow_screen_key'),
    )
    _common_indexes('flow_screens')
    op.create_index('ix_flow_screens_version_id', 'flow_screens', ['version_id'])

    # Components
    op.create_table(
        'flow_components',
        *_common_columns(),
        sa.Column('external_id', sa.String(length=36), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('screen_id', sa.Integer(), nullable=False),
        sa.Column('component_key', sa.String(length=128), nullable=False),
        sa.Column('component_type', sa.String(length=64), nullable=False),
        sa.Column('label', sa.String(length=255), nullable=False),
        sa.Column('variable_key', sa.String(length=128), nullable=True),
        sa.Column('required', sa.Boolean(), nullable=False),
        sa.Column('placeholder', sa.String(length=255), nullable=True),
        sa.Column('options', sa.JSON(), nullable=True),
        sa.Column('validation_rules', sa.JSON(), nullable=True),
        sa.Column('default_value', sa.JSON(), nullable=True),
        sa.Column('config', sa.JSON(), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['version_id'], ['flow_versions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['screen_id'], ['flow_screens.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('external_id'),
        sa.UniqueConstraint('screen_id', 'component_key', name='uk_flow_component_key'),
    )
    _common_indexes('flow_components')
    op.create_index('ix_flow_components_version_id', 'flow_components', ['version_id'])
    op.create_index('ix_flow_components_screen_id', 'flow_components', ['screen_id'])

    # Actions
    op.create_table(
        'flow_actions',
        *_common_columns(),
        sa.Column('external_id', sa.String(length=36), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('screen_id', sa.Integer(), nullable=False),
        sa.Column('action_key', sa.String(length=128), nullable=False),
        sa.Column('action_type', sa.String(length=64), nullable=False),
        sa.Column('label', sa.String(length=255), nullable=True),
        sa.Column('trigger_component_key', sa.String(length=128), nullable=True),
        sa.Column('target_screen_key', sa.String(length=128), nullable=True),
        sa.Column('api_config', sa.JSON(), nullable=True),
        sa.Column('payload_mapping', sa.JSON(), nullable=True),
        sa.Column('condition', sa.JSON(), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['version_id'], ['flow_versions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['screen_id'], ['flow_screens.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('external_id'),
        sa.UniqueConstraint('screen_id', 'action_key', name='uk_flow_action_key'),
    )
    _common_indexes('flow_actions')
    op.create_index('ix_flow_actions_version_id', 'flow_actions', ['version_id'])
    op.create_index('ix_flow_actions_screen_id', 'flow_actions', ['screen_id'])

    # Submissions
    op.create_table(
        'flow_submissions',
        *_common_columns(),
        sa.Column('external_id', sa.String(length=36), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False),
        sa.Column('business_account_id', sa.String(length=64), nullable=False),
        sa.Column('app_id', sa.String(length=64), nullable=False),

        sa.Column('responder_phone', sa.String(length=32), nullable=False),
        sa.Column('answers', sa.JSON(), nullable=False),
        sa.Column('mapped_response', sa.JSON(), nullable=True),

        sa.Column(
            'status',
            sa.Enum('RECEIVED', 'PROCESSING', 'COMPLETED', 'FAILED', name='flowsubmissionstatus'),
            nullable=False,
        ),
        sa.Column('source', sa.Enum('WHATSAPP', 'WEBHOOK', 'API', name='flowsubmissionsource'), nullable=False),
        sa.Column('external_reference', sa.String(length=128), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=False),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['template_id'], ['flow_templates.id']),
        sa.ForeignKeyConstraint(['version_id'], ['flow_versions.id']),
    )
    _common_indexes('flow_submissions')
    op.create_index('ix_flow_submissions_external_id', 'flow_submissions', ['external_id'], unique=True)
    op.create_index('ix_flow_submissions_template_id', 'flow_submissions', ['template_id'])
    op.create_index('ix_flow_submissions_version_id', 'flow_submissions', ['version_id'])
    op.create_index('ix_flow_submissions_responder_phone', 'flow_submissions', ['responder_phone'])


def downgrade():
    # Children first; indexes go with their tables
    for table in ('flow_submissions', 'flow_actions', 'flow_components', 'flow_screens', 'flow_versions', 'flow_templates'):
        op.drop_table(table)

    # Drop enums
    if op.get_bind().dialect.name == 'postgresql':
        for enum_name in ENUM_TYPES:
            op.execute(f'DROP TYPE IF EXISTS {enum_name}')
