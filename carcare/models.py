from datetime import datetime
from sqlalchemy import desc
from sqlalchemy.orm import relationship, validates
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from carcare.extensions import db

ROLE_ADMIN = "admin"
ROLE_EMPLOYEE = "employee"
ROLES = (ROLE_ADMIN, ROLE_EMPLOYEE)

OPERATION_INQUIRY = "inquiry"
OPERATION_SERVICE = "service"
OPERATION_TYPES = (OPERATION_INQUIRY, OPERATION_SERVICE)


class Branch(db.Model):
    __tablename__ = "branches"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    location = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    users = relationship("User", backref="branch", lazy=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id", ondelete="SET NULL"), nullable=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_EMPLOYEE)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @validates("role")
    def validate_role(self, key, value):
        if value not in ROLES:
            raise ValueError(f"Invalid role: {value}")
        return value

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password or "")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self):
        # password_hash never leaves the model
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "role": self.role,
            "branch_id": self.branch_id,
            "branch_name": self.branch.name if self.branch else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User id={self.id} username={self.username} role={self.role}>"


class Car(db.Model):
    """
    Reference row: (brand, model, year range, engine) -> recommended oil spec.
    """

    __tablename__ = "cars"

    id = db.Column(db.Integer, primary_key=True)
    brand = db.Column(db.String(100), nullable=False, index=True)
    model = db.Column(db.String(100), nullable=False, index=True)
    year_from = db.Column(db.Integer, nullable=False)
    year_to = db.Column(db.Integer, nullable=False)
    engine_size = db.Column(db.String(50), nullable=False)
    oil_type = db.Column(db.String(100), nullable=False)
    oil_viscosity = db.Column(db.String(50), nullable=False)
    oil_quantity = db.Column(db.Numeric(5, 2, asdecimal=False), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_cars_brand_model", "brand", "model"),
    )

    def oil_spec(self):
        return {
            "oil_type": self.oil_type,
            "oil_viscosity": self.oil_viscosity,
            "oil_quantity": float(self.oil_quantity) if self.oil_quantity is not None else None,
        }

    def to_dict(self):
        data = {
            "id": self.id,
            "brand": self.brand,
            "model": self.model,
            "year_from": self.year_from,
            "year_to": self.year_to,
            "engine_size": self.engine_size,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        data.update(self.oil_spec())
        return data

    def __repr__(self):
        return f"<Car {self.brand} {self.model} {self.year_from}-{self.year_to} {self.engine_size}>"


class Operation(db.Model):
    """
    Append-only log of inquiries and services. There is no update path.
    """

    __tablename__ = "operations"

    id = db.Column(db.Integer, primary_key=True)
    car_brand = db.Column(db.String(100), nullable=False)
    car_model = db.Column(db.String(100), nullable=False)
    car_year = db.Column(db.Integer, nullable=False)
    engine_size = db.Column(db.String(50), nullable=False)
    oil_used = db.Column(db.String(100), nullable=True)
    oil_viscosity = db.Column(db.String(50), nullable=True)
    oil_quantity = db.Column(db.Numeric(5, 2, asdecimal=False), nullable=True)
    oil_filter = db.Column(db.Boolean, nullable=False, default=False)
    air_filter = db.Column(db.Boolean, nullable=False, default=False)
    cooling_filter = db.Column(db.Boolean, nullable=False, default=False)
    is_matching = db.Column(db.Boolean, nullable=False, default=True)
    mismatch_reason = db.Column(db.Text, nullable=True)
    reason_source = db.Column(db.String(10), nullable=True)  # user | ai
    operation_type = db.Column(db.String(20), nullable=False, default=OPERATION_SERVICE)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", lazy=True)
    branch = relationship("Branch", lazy=True)

    __table_args__ = (
        db.Index("ix_operations_branch", "branch_id"),
        db.Index("ix_operations_user", "user_id"),
        db.Index("ix_operations_created", desc("created_at")),
        db.Index("ix_operations_matching", "is_matching"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "operation_type": self.operation_type,
            "car_brand": self.car_brand,
            "car_model": self.car_model,
            "car_year": self.car_year,
            "engine_size": self.engine_size,
            "oil_used": self.oil_used,
            "oil_viscosity": self.oil_viscosity,
            "oil_quantity": float(self.oil_quantity) if self.oil_quantity is not None else None,
            "oil_filter": bool(self.oil_filter),
            "air_filter": bool(self.air_filter),
            "cooling_filter": bool(self.cooling_filter),
            "is_matching": bool(self.is_matching),
            "mismatch_reason": self.mismatch_reason,
            "reason_source": self.reason_source,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "branch_id": self.branch_id,
            "branch_name": self.branch.name if self.branch else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
