"""Create license request tables.

Revision ID: 5f1c2a9d7e30
Revises:
Create Date: 2026-10-19

Creates profiles, license_requests, license_evidences and
license_status_events, plus the reference catalogs. Status values are
the canonical lowercase forms.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '5f1c2a9d7e30'
down_revision = None
branch_labels = None
depends_on = None

CATALOGS = (
    'document_types',
    'marital_status',
    'academic_modalities',
    'institutions',
    'report_periods',
)


def upgrade() -> None:
    """Create license tables."""
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(64), primary_key=True,
                  comment='Identity provider user id'),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(16), nullable=False, server_default='user',
                  comment='user, rh or admin'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.CheckConstraint("role IN ('user', 'rh', 'admin')", name='ck_profiles_role'),
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'])

    op.create_table(
        'license_requests',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('radicado', sa.String(32), nullable=False,
                  comment='LIC-{year}-{9 digits}'),
        sa.Column('user_id', sa.String(64), nullable=False),

        # Applicant
        sa.Column('nombres', sa.String(120), nullable=False),
        sa.Column('apellidos', sa.String(120), nullable=False),
        sa.Column('tipo_documento', sa.String(40), nullable=False),
        sa.Column('numero_documento', sa.String(40), nullable=False),
        sa.Column('cargo', sa.String(120), nullable=False),
        sa.Column('area_trabajo', sa.String(120), nullable=True),
        sa.Column('codigo_tipo_permiso', sa.String(20), nullable=True),

        # Period
        sa.Column('fecha_inicio', sa.Date(), nullable=False),
        sa.Column('fecha_finalizacion', sa.Date(), nullable=False),
        sa.Column('fecha_compensacion', sa.Date(), nullable=True),
        sa.Column('hora_inicio', sa.Time(), nullable=True),
        sa.Column('hora_fin', sa.Time(), nullable=True),

        sa.Column('reemplazo', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reemplazante', sa.String(120), nullable=True),
        sa.Column('observacion', sa.Text(), nullable=True),

        # Review
        sa.Column('estado', sa.String(20), nullable=False, server_default='pendiente'),
        sa.Column('comentarios_rh', sa.Text(), nullable=True),

        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.Column('created_by', sa.String(64), nullable=True),
        sa.Column('updated_by', sa.String(64), nullable=True),

        sa.CheckConstraint('fecha_finalizacion >= fecha_inicio', name='ck_license_requests_dates'),
        sa.CheckConstraint(
            "estado IN ('pendiente', 'en_revision', 'aprobada', 'rechazada', 'cancelada')",
            name='ck_license_requests_estado',
        ),
    )
    op.create_index('ix_license_requests_radicado', 'license_requests', ['radicado'], unique=True)
    op.create_index('ix_license_requests_user_id', 'license_requests', ['user_id'])
    op.create_index('ix_license_requests_numero_documento', 'license_requests', ['numero_documento'])
    op.create_index('ix_license_requests_estado', 'license_requests', ['estado'])

    op.create_table(
        'license_evidences',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('license_request_id', sa.Uuid(),
                  sa.ForeignKey('license_requests.id'), nullable=False),
        sa.Column('document_type', sa.String(64), nullable=False),
        sa.Column('item_id', sa.String(64), nullable=False, server_default='default'),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_path', sa.String(512), nullable=False,
                  comment='Object key: {prefix}/{owner}/{request}/{document_type}/{item_id}'),
        sa.Column('file_url', sa.Text(), nullable=True),
        sa.Column('file_type', sa.String(120), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.Column('uploaded_by', sa.String(64), nullable=True),
        sa.UniqueConstraint('license_request_id', 'document_type', 'item_id',
                            name='uq_license_evidence_slot'),
    )
    op.create_index('ix_license_evidences_license_request_id', 'license_evidences', ['license_request_id'])

    op.create_table(
        'license_status_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('license_request_id', sa.Uuid(),
                  sa.ForeignKey('license_requests.id'), nullable=False),
        sa.Column('from_status', sa.String(20), nullable=False),
        sa.Column('to_status', sa.String(20), nullable=False),
        sa.Column('actor_id', sa.String(64), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
    )
    op.create_index('ix_license_status_events_license_request_id', 'license_status_events',
                    ['license_request_id'])

    for name in CATALOGS:
        op.create_table(
            name,
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('code', sa.String(40), nullable=True),
            sa.Column('name', sa.String(255), nullable=False),
        )


def downgrade() -> None:
    """Drop license tables."""
    for name in reversed(CATALOGS):
        op.drop_table(name)
    op.drop_index('ix_license_status_events_license_request_id', table_name='license_status_events')
    op.drop_table('license_status_events')
    op.drop_index('ix_license_evidences_license_request_id', table_name='license_evidences')
    op.drop_table('license_evidences')
    op.drop_index('ix_license_requests_estado', table_name='license_requests')
    op.drop_index('ix_license_requests_numero_documento', table_name='license_requests')
    op.drop_index('ix_license_requests_user_id', table_name='license_requests')
    op.drop_index('ix_license_requests_radicado', table_name='license_requests')
    op.drop_table('license_requests')
    op.drop_index('ix_profiles_email', table_name='profiles')
    op.drop_table('profiles')
