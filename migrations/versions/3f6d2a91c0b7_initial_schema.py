"""initial schema: branches, users, cars, operations

Revision ID: 3f6d2a91c0b7
Revises:
Create Date: 2026-10-19 09:12:31.402117

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = '3f6d2a91c0b7'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())

    def _log(message: str):
        print(f"[MIGRATION] {message}")

    def _ensure_table(name: str, create_fn, index_specs=()):
        if name in tables:
            _log(f"{name} already exists; skipping create_table")
            return
        create_fn()
        for index_name, columns in index_specs:
            op.create_index(index_name, name, columns, unique=False)
        tables.add(name)
        _log(f"{name} created")

    _ensure_table(
        "branches",
        lambda: op.create_table(
            "branches",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("location", sa.String(length=255), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        ),
    )
    _ensure_table(
        "users",
        lambda: op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("username", sa.String(length=100), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("branch_id", sa.Integer(), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
        ),
    )
    _ensure_table(
        "cars",
        lambda: op.create_table(
            "cars",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("brand", sa.String(length=100), nullable=False),
            sa.Column("model", sa.String(length=100), nullable=False),
            sa.Column("year_from", sa.Integer(), nullable=False),
            sa.Column("year_to", sa.Integer(), nullable=False),
            sa.Column("engine_size", sa.String(length=50), nullable=False),
            sa.Column("oil_type", sa.String(length=100), nullable=False),
            sa.Column("oil_viscosity", sa.String(length=50), nullable=False),
            sa.Column("oil_quantity", sa.Numeric(precision=5, scale=2), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        ),
        index_specs=[
            (op.f("ix_cars_brand"), ["brand"]),
            (op.f("ix_cars_model"), ["model"]),
            ("ix_cars_brand_model", ["brand", "model"]),
        ],
    )
    _ensure_table(
        "operations",
        lambda: op.create_table(
            "operations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("car_brand", sa.String(length=100), nullable=False),
            sa.Column("car_model", sa.String(length=100), nullable=False),
            sa.Column("car_year", sa.Integer(), nullable=False),
            sa.Column("engine_size", sa.String(length=50), nullable=False),
            sa.Column("oil_used", sa.String(length=100), nullable=True),
            sa.Column("oil_viscosity", sa.String(length=50), nullable=True),
            sa.Column("oil_quantity", sa.Numeric(precision=5, scale=2), nullable=True),
            sa.Column("oil_filter", sa.Boolean(), nullable=False),
            sa.Column("air_filter", sa.Boolean(), nullable=False),
            sa.Column("cooling_filter", sa.Boolean(), nullable=False),
            sa.Column("is_matching", sa.Boolean(), nullable=False),
            sa.Column("mismatch_reason", sa.Text(), nullable=True),
            sa.Column("reason_source", sa.String(length=10), nullable=True),
            sa.Column("operation_type", sa.String(length=20), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("branch_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        ),
        index_specs=[
            ("ix_operations_branch", ["branch_id"]),
            ("ix_operations_user", ["user_id"]),
            ("ix_operations_created", [sa.text("created_at DESC")]),
            ("ix_operations_matching", ["is_matching"]),
        ],
    )


def downgrade():
    with op.batch_alter_table('operations', schema=None) as batch_op:
        batch_op.drop_index('ix_operations_matching')
        batch_op.drop_index('ix_operations_created')
        batch_op.drop_index('ix_operations_user')
        batch_op.drop_index('ix_operations_branch')
    op.drop_table('operations')

    with op.batch_alter_table('cars', schema=None) as batch_op:
        batch_op.drop_index('ix_cars_brand_model')
        batch_op.drop_index(batch_op.f('ix_cars_model'))
        batch_op.drop_index(batch_op.f('ix_cars_brand'))
    op.drop_table('cars')

    op.drop_table('users')
    op.drop_table('branches')
