"""init pipeline tables

Revision ID: 5a1e0c7d2b91
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5a1e0c7d2b91"
down_revision: Union[str, Sequence[str], None] = None
branch_labels = None
depends_on = None

TS = sa.DateTime(timezone=True)


def _assignment_columns():
    return [
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("sizes_json", sa.JSON(), nullable=True),
        sa.Column("assigned_on", TS, nullable=False, server_default=sa.func.now()),
        sa.Column("is_approved", sa.Boolean(), nullable=True),   # NULL = pending
        sa.Column("approved_on", TS, nullable=True),
        sa.Column("assignment_remark", sa.Text(), nullable=True),
        sa.Column("assigner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
    ]


def _create_stage(prefix: str):
    """<prefix>_data + _data_sizes + _data_updates"""
    data = f"{prefix}_data"
    fk = f"{prefix}_data_id"
    op.create_table(
        data,
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("lot_no", sa.String(), nullable=False, index=True),
        sa.Column("sku", sa.String(), nullable=True),
        sa.Column("total_pieces", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("remark", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("assignment_id", sa.Integer(), sa.ForeignKey(f"{prefix}_assignments.id"),
                  nullable=True, index=True),
    )
    op.create_index(f"ix_{data}_lot_user", data, ["lot_no", "user_id"])

    op.create_table(
        f"{data}_sizes",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(fk, sa.Integer(), sa.ForeignKey(f"{data}.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("size_label", sa.String(), nullable=False),
        sa.Column("pieces", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint(fk, "size_label", name=f"uq_{data}_sizes_label"),
    )
    op.create_table(
        f"{data}_updates",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(fk, sa.Integer(), sa.ForeignKey(f"{data}.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("size_label", sa.String(), nullable=False),
        sa.Column("pieces", sa.Integer(), nullable=False),
        sa.Column("updated_at", TS, nullable=False, server_default=sa.func.now()),
    )


def upgrade() -> None:
    # --- users / roles ---
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
    )
    op.create_index(op.f("ix_roles_name"), "roles", ["name"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.sql.expression.true()),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(op.f("ix_users_username"), "users", ["username"], unique=True)
    op.create_index(op.f("ix_users_role_id"), "users", ["role_id"])
    op.create_index("ix_users_active", "users", ["is_active"])

    op.create_table(
        "doc_counters",
        sa.Column("doc_type", sa.String(), nullable=False),
        sa.Column("scope", sa.String(), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("doc_type", "scope"),
        sa.UniqueConstraint("doc_type", "scope", name="uq_doc_counters_type_scope"),
    )

    # --- cutting ---
    op.create_table(
        "cutting_lots",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("lot_no", sa.String(), nullable=False),
        sa.Column("sku", sa.String(), nullable=False, index=True),
        sa.Column("fabric_type", sa.String(), nullable=True),
        sa.Column("remark", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("total_pieces", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(op.f("ix_cutting_lots_lot_no"), "cutting_lots", ["lot_no"], unique=True)

    op.create_table(
        "cutting_lot_sizes",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("cutting_lot_id", sa.Integer(), sa.ForeignKey("cutting_lots.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("size_label", sa.String(), nullable=False),
        sa.Column("pattern_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_pieces", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("cutting_lot_id", "size_label", name="uq_cutting_lot_sizes_label"),
    )
    op.create_table(
        "cutting_lot_rolls",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("cutting_lot_id", sa.Integer(), sa.ForeignKey("cutting_lots.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("roll_no", sa.String(), nullable=False),
        sa.Column("weight_used", sa.Integer(), nullable=True),
        sa.Column("layers", sa.Integer(), nullable=False, server_default="0"),
    )

    # --- stages, in chain order so every FK target exists ---
    op.create_table(
        "stitching_assignments",
        *_assignment_columns(),
        sa.Column("cutting_lot_id", sa.Integer(), sa.ForeignKey("cutting_lots.id"), nullable=False, index=True),
    )
    _create_stage("stitching")

    op.create_table(
        "jeans_assembly_assignments",
        *_assignment_columns(),
        sa.Column("stitching_data_id", sa.Integer(), sa.ForeignKey("stitching_data.id"), nullable=False, index=True),
    )
    _create_stage("jeans_assembly")

    op.create_table(
        "washing_assignments",
        *_assignment_columns(),
        sa.Column("jeans_assembly_data_id", sa.Integer(), sa.ForeignKey("jeans_assembly_data.id"),
                  nullable=False, index=True),
    )
    _create_stage("washing")

    op.create_table(
        "washing_in_assignments",
        *_assignment_columns(),
        sa.Column("washing_data_id", sa.Integer(), sa.ForeignKey("washing_data.id"), nullable=False, index=True),
    )
    _create_stage("washing_in")

    op.create_table(
        "finishing_assignments",
        *_assignment_columns(),
        sa.Column("stitching_data_id", sa.Integer(), sa.ForeignKey("stitching_data.id"), nullable=True, index=True),
        sa.Column("washing_in_data_id", sa.Integer(), sa.ForeignKey("washing_in_data.id"), nullable=True, index=True),
    )
    _create_stage("finishing")

    # --- dispatch ---
    op.create_table(
        "finishing_dispatches",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("finishing_data_id", sa.Integer(), sa.ForeignKey("finishing_data.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("lot_no", sa.String(), nullable=False, index=True),
        sa.Column("challan_no", sa.String(), nullable=False, index=True),
        sa.Column("destination", sa.String(), nullable=False),
        sa.Column("size_label", sa.String(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("sent_at", TS, nullable=False, server_default=sa.func.now()),
    )

    # --- rewash ---
    op.create_table(
        "rewash_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("washing_data_id", sa.Integer(), sa.ForeignKey("washing_data.id"), nullable=False, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("lot_no", sa.String(), nullable=False, index=True),
        sa.Column("sku", sa.String(), nullable=True),
        sa.Column("total_requested", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", TS, nullable=True),
    )
    op.create_index("ix_rewash_requests_wd_status", "rewash_requests", ["washing_data_id", "status"])

    op.create_table(
        "rewash_request_sizes",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("rewash_request_id", sa.Integer(), sa.ForeignKey("rewash_requests.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("size_label", sa.String(), nullable=False),
        sa.Column("pieces_requested", sa.Integer(), nullable=False),
    )

    # --- roles the pipeline checks for ---
    roles = sa.table("roles", sa.column("name", sa.String()))
    op.bulk_insert(roles, [
        {"name": n} for n in (
            "admin", "operator", "cutting_manager", "stitching_master",
            "jeans_assembly", "washing", "washing_in", "finishing",
        )
    ])


def downgrade() -> None:
    op.drop_table("rewash_request_sizes")
    op.drop_index("ix_rewash_requests_wd_status", table_name="rewash_requests")
    op.drop_table("rewash_requests")
    op.drop_table("finishing_dispatches")
    for prefix in ("finishing", "washing_in", "washing", "jeans_assembly", "stitching"):
        op.drop_table(f"{prefix}_data_updates")
        op.drop_table(f"{prefix}_data_sizes")
        op.drop_index(f"ix_{prefix}_data_lot_user", table_name=f"{prefix}_data")
        op.drop_table(f"{prefix}_data")
        op.drop_table(f"{prefix}_assignments")
    op.drop_table("cutting_lot_rolls")
    op.drop_table("cutting_lot_sizes")
    op.drop_index(op.f("ix_cutting_lots_lot_no"), table_name="cutting_lots")
    op.drop_table("cutting_lots")
    op.drop_table("doc_counters")
    op.drop_index("ix_users_active", table_name="users")
    op.drop_index(op.f("ix_users_role_id"), table_name="users")
    op.drop_index(op.f("ix_users_username"), table_name="users")
    op.drop_table("users")
    op.drop_index(op.f("ix_roles_name"), table_name="roles")
    op.drop_table("roles")
