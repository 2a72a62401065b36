"""Initial tables: users, audit, sequences, students, textbooks and indents

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from textbook_indents.core.auth.password import hash_password

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("branch_id", sa.BigInteger(), nullable=True),
        sa.Column("capabilities", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"], unique=False)
    op.create_index("ix_users_branch_id", "users", ["branch_id"], unique=False)

    # Document sequences table
    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("prefix", sa.String(20), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("prefix", "year", name="uq_document_sequences_prefix_year"),
    )

    # Audit logs table
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.BigInteger(), nullable=False),
        sa.Column("entity_identifier", sa.String(200), nullable=True),
        sa.Column("old_values", postgresql.JSONB(), nullable=True),
        sa.Column("new_values", postgresql.JSONB(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"], unique=False)
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"], unique=False)
    op.create_index(
        "ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"], unique=False
    )

    # Students table
    op.create_table(
        "students",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("branch_id", sa.BigInteger(), nullable=False),
        sa.Column("admission_number", sa.String(50), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("class_name", sa.String(50), nullable=False),
        sa.Column("division", sa.String(20), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("branch_id", "admission_number", name="uq_students_branch_admission"),
    )
    op.create_index("ix_students_branch_id", "students", ["branch_id"], unique=False)
    op.create_index(
        "ix_students_admission_number", "students", ["admission_number"], unique=False
    )
    op.create_index("ix_students_class_name", "students", ["class_name"], unique=False)

    # Textbooks table
    op.create_table(
        "textbooks",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("branch_id", sa.BigInteger(), nullable=False),
        sa.Column("academic_year", sa.String(20), nullable=False),
        sa.Column("book_code", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("subject", sa.String(100), nullable=False),
        sa.Column("class_name", sa.String(50), nullable=False),
        sa.Column("publisher", sa.String(200), nullable=False),
        sa.Column("price", sa.Numeric(15, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("available", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "branch_id", "academic_year", "book_code", name="uq_textbooks_branch_year_code"
        ),
        sa.CheckConstraint("available >= 0", name="ck_textbooks_available_non_negative"),
        sa.CheckConstraint("available <= quantity", name="ck_textbooks_available_le_quantity"),
    )
    op.create_index("ix_textbooks_branch_id", "textbooks", ["branch_id"], unique=False)
    op.create_index("ix_textbooks_academic_year", "textbooks", ["academic_year"], unique=False)
    op.create_index("ix_textbooks_subject", "textbooks", ["subject"], unique=False)
    op.create_index("ix_textbooks_class_name", "textbooks", ["class_name"], unique=False)

    # Textbook stock movements
    op.create_table(
        "textbook_movements",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("textbook_id", sa.BigInteger(), nullable=False),
        sa.Column("movement_type", sa.String(20), nullable=False),
        sa.Column("quantity_delta", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("available_delta", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("available_after", sa.Integer(), nullable=False),
        sa.Column("reference_type", sa.String(50), nullable=True),
        sa.Column("reference_id", sa.BigInteger(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.BigInteger(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["textbook_id"], ["textbooks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"]),
    )
    op.create_index(
        "ix_textbook_movements_textbook_id", "textbook_movements", ["textbook_id"], unique=False
    )
    op.create_index(
        "ix_textbook_movements_movement_type",
        "textbook_movements",
        ["movement_type"],
        unique=False,
    )
    op.create_index(
        "ix_textbook_movements_reference_id", "textbook_movements", ["reference_id"], unique=False
    )
    op.create_index(
        "ix_textbook_movements_created_at", "textbook_movements", ["created_at"], unique=False
    )

    # Textbook indents
    op.create_table(
        "textbook_indents",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("indent_number", sa.String(50), nullable=False),
        sa.Column("branch_id", sa.BigInteger(), nullable=False),
        sa.Column("academic_year", sa.String(20), nullable=False),
        sa.Column("student_id", sa.BigInteger(), nullable=False),
        sa.Column("student_name", sa.String(200), nullable=False),
        sa.Column("admission_number", sa.String(50), nullable=False),
        sa.Column("class_name", sa.String(50), nullable=False),
        sa.Column("division", sa.String(20), nullable=True),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("expected_return_date", sa.Date(), nullable=True),
        sa.Column("total_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("paid_amount", sa.Numeric(15, 2), nullable=False, server_default="0.00"),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default="cash"),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending"),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("issued_by_id", sa.BigInteger(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_id", sa.BigInteger(), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("receipt_generated", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_by_id", sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"]),
        sa.ForeignKeyConstraint(["issued_by_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["cancelled_by_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"]),
        sa.CheckConstraint("paid_amount >= 0", name="ck_textbook_indents_paid_non_negative"),
        sa.CheckConstraint(
            "paid_amount <= total_amount", name="ck_textbook_indents_paid_le_total"
        ),
    )
    op.create_index(
        "ix_textbook_indents_indent_number", "textbook_indents", ["indent_number"], unique=True
    )
    op.create_index("ix_textbook_indents_branch_id", "textbook_indents", ["branch_id"])
    op.create_index("ix_textbook_indents_academic_year", "textbook_indents", ["academic_year"])
    op.create_index("ix_textbook_indents_student_id", "textbook_indents", ["student_id"])
    op.create_index(
        "ix_textbook_indents_admission_number", "textbook_indents", ["admission_number"]
    )
    op.create_index("ix_textbook_indents_class_name", "textbook_indents", ["class_name"])
    op.create_index("ix_textbook_indents_issue_date", "textbook_indents", ["issue_date"])
    op.create_index("ix_textbook_indents_status", "textbook_indents", ["status"])

    # Indent items
    op.create_table(
        "textbook_indent_items",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("indent_id", sa.BigInteger(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("textbook_id", sa.BigInteger(), nullable=False),
        sa.Column("book_code", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("subject", sa.String(100), nullable=False),
        sa.Column("publisher", sa.String(200), nullable=False),
        sa.Column("unit_price", sa.Numeric(15, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("returned_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("written_off_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("condition", sa.String(20), nullable=True),
        sa.Column("return_date", sa.Date(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["indent_id"], ["textbook_indents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["textbook_id"], ["textbooks.id"]),
        sa.CheckConstraint("quantity > 0", name="ck_textbook_indent_items_quantity_positive"),
        sa.CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= quantity",
            name="ck_textbook_indent_items_returned_bounds",
        ),
        sa.CheckConstraint(
            "written_off_quantity >= 0 AND written_off_quantity <= returned_quantity",
            name="ck_textbook_indent_items_written_off_bounds",
        ),
    )
    op.create_index(
        "ix_textbook_indent_items_indent_id", "textbook_indent_items", ["indent_id"]
    )
    op.create_index(
        "ix_textbook_indent_items_textbook_id", "textbook_indent_items", ["textbook_id"]
    )

    # Return history
    op.create_table(
        "textbook_indent_returns",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("indent_id", sa.BigInteger(), nullable=False),
        sa.Column("item_id", sa.BigInteger(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("condition", sa.String(20), nullable=False),
        sa.Column("written_off", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("processed_by_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["indent_id"], ["textbook_indents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["item_id"], ["textbook_indent_items.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["processed_by_id"], ["users.id"]),
    )
    op.create_index(
        "ix_textbook_indent_returns_indent_id", "textbook_indent_returns", ["indent_id"]
    )
    op.create_index(
        "ix_textbook_indent_returns_item_id", "textbook_indent_returns", ["item_id"]
    )

    # Seed first SuperAdmin user
    # Password: Admin123! (change in production!)
    op.execute(
        sa.text(
            """
            INSERT INTO users (email, password_hash, full_name, role, capabilities, is_active,
                               created_at, updated_at)
            VALUES (
                'admin@school.com',
                :password_hash,
                'System Administrator',
                'SuperAdmin',
                '[]',
                true,
                NOW(),
                NOW()
            )
            """
        ).bindparams(password_hash=hash_password("Admin123!"))
    )


def downgrade() -> None:
    op.drop_table("textbook_indent_returns")
    op.drop_table("textbook_indent_items")
    op.drop_table("textbook_indents")
    op.drop_table("textbook_movements")
    op.drop_table("textbooks")
    op.drop_table("students")
    op.drop_table("audit_logs")
    op.drop_table("document_sequences")
    op.drop_table("users")
