"""Create stored_documents table for the persisted association document

Revision ID: 20261019_stored_documents
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_stored_documents"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("stored_documents"):
        op.create_table(
            "stored_documents",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("namespace", sa.String(length=64), nullable=False),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("revision", sa.Integer(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("namespace", name="uq_stored_documents_namespace"),
            sqlite_autoincrement=True,
        )
        with op.batch_alter_table("stored_documents", schema=None) as batch_op:
            batch_op.create_index("ix_stored_documents_namespace", ["namespace"], unique=False)


def downgrade():
    with op.batch_alter_table("stored_documents", schema=None) as batch_op:
        batch_op.drop_index("ix_stored_documents_namespace")

    op.drop_table("stored_documents")
