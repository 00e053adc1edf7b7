"""create_todo_tables

Create `persons`, `todos` and `todo_collaboration_requests`.

Revision ID: 3f9c2a7d1e01
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "3f9c2a7d1e01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "persons" not in existing_tables:
        op.create_table(
            "persons",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_persons_name", "persons", ["name"], unique=True)

    if "todos" not in existing_tables:
        op.create_table(
            "todos",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("owner_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=30), nullable=False),
            sa.Column("description", sa.String(length=100), nullable=True),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="OPEN"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["owner_id"], ["persons.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_todos_owner_id", "todos", ["owner_id"])

    if "todo_collaboration_requests" not in existing_tables:
        op.create_table(
            "todo_collaboration_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("todo_id", sa.Integer(), nullable=False),
            sa.Column("collaborator_id", sa.Integer(), nullable=False),
            sa.Column("token", sa.String(length=64), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["todo_id"], ["todos.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["collaborator_id"], ["persons.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_todo_collaboration_requests_todo_id", "todo_collaboration_requests", ["todo_id"],
        )
        op.create_index(
            "ix_todo_collaboration_requests_collaborator_id",
            "todo_collaboration_requests", ["collaborator_id"],
        )
        op.create_index(
            "ix_collab_requests_todo_collaborator",
            "todo_collaboration_requests", ["todo_id", "collaborator_id"],
        )


def downgrade():
    op.drop_table("todo_collaboration_requests")
    op.drop_table("todos")
    op.drop_index("ix_persons_name", table_name="persons")
    op.drop_table("persons")
