# -*- coding: utf-8 -*-
"""
Reference table of cars -> recommended oil.

Lookups (brands/models/engines/search) feed the progressive intake form and
are open to every signed-in user; writes are admin only.
"""

import io

import pandas as pd
from flask import Blueprint, current_app, request
from flask_login import current_user, login_required

from carcare.auth import admin_required
from carcare.exceptions import ValidationError
from carcare.extensions import db
from carcare.models import Car
from carcare.services import recommendation
from carcare.utils.db_bootstrap import CAR_COLUMNS
from carcare.utils.http_helpers import api_error, api_ok, get_json_body
from carcare.utils.validation import clean_text, validate_car, validate_cars_bulk, validate_vehicle

bp = Blueprint('cars', __name__, url_prefix='/api/cars')

MSG_NOT_FOUND = "السيارة غير موجودة"
MSG_NO_MATCH = "⚠️ لا توجد بيانات لهذه السيارة في قاعدة البيانات"


def _required_arg(name: str) -> str:
    value = clean_text(request.args.get(name))
    if not value:
        raise ValidationError(f"المعامل {name} مطلوب", field=name, code="required")
    return value


# ------------------------------------------------------------------
# Lookups
# ------------------------------------------------------------------

@bp.route('/brands')
@login_required
def brands():
    return api_ok(recommendation.list_brands())


@bp.route('/models')
@login_required
def models():
    return api_ok(recommendation.list_models(_required_arg("brand")))


@bp.route('/engines')
@login_required
def engines():
    return api_ok(recommendation.list_engines(_required_arg("brand"), _required_arg("model")))


@bp.route('/search')
@login_required
def search():
    vehicle = validate_vehicle(request.args)
    car = recommendation.resolve_recommendation(
        vehicle["brand"], vehicle["model"], vehicle["year"], vehicle["engine_size"]
    )
    if car is None:
        return api_error("car_not_found", MSG_NO_MATCH, status=404)
    return api_ok(car.to_dict())


# ------------------------------------------------------------------
# CRUD
# ------------------------------------------------------------------

@bp.route('', methods=['GET'])
@login_required
def list_cars():
    query = Car.query
    brand = clean_text(request.args.get("brand"))
    if brand:
        query = query.filter(db.func.lower(Car.brand) == brand.lower())
    cars = query.order_by(Car.brand.asc(), Car.model.asc(), Car.year_from.desc()).all()
    return api_ok([c.to_dict() for c in cars])


@bp.route('/<int:car_id>', methods=['GET'])
@login_required
def get_car(car_id):
    car = db.session.get(Car, car_id)
    if car is None:
        return api_error("not_found", MSG_NOT_FOUND, status=404)
    return api_ok(car.to_dict())


def _insert_cars(rows):
    cars = [Car(**row) for row in rows]
    db.session.add_all(cars)
    db.session.commit()
    current_app.logger.info("[ADMIN] %d car rows inserted by user=%s", len(cars), current_user.id)
    return cars


@bp.route('', methods=['POST'])
@login_required
@admin_required
def create_cars():
    """A single car object, or a JSON array for bulk insert."""
    payload = request.get_json(silent=True)
    if isinstance(payload, list):
        cars = _insert_cars(validate_cars_bulk(payload))
        return api_ok({"inserted": len(cars), "cars": [c.to_dict() for c in cars]}, status=201)
    car = _insert_cars([validate_car(payload if isinstance(payload, dict) else {})])[0]
    return api_ok(car.to_dict(), status=201)


@bp.route('/import', methods=['POST'])
@login_required
@admin_required
def import_cars():
    """
    CSV import (multipart ``file`` or a raw text/csv body). Headers must
    include every reference column; the whole file is rejected on any bad row.
    """
    upload = request.files.get("file")
    raw = upload.read() if upload else request.get_data()
    if not raw:
        return api_error("validation_error", "لم يتم إرسال ملف CSV", status=400, details={"field": "file"})
    try:
        frame = pd.read_csv(io.BytesIO(raw), dtype=str, encoding="utf-8-sig", keep_default_na=False)
    except (ValueError, pd.errors.ParserError, UnicodeDecodeError):
        return api_error("validation_error", "ملف CSV غير صالح", status=400, details={"field": "file"})

    frame.columns = [str(c).strip().lower() for c in frame.columns]
    missing = [c for c in CAR_COLUMNS if c not in frame.columns]
    if missing:
        return api_error(
            "validation_error",
            "أعمدة مفقودة في ملف CSV: " + ", ".join(missing),
            status=400,
            details={"missing": missing},
        )
    rows = frame[list(CAR_COLUMNS)].to_dict(orient="records")
    cars = _insert_cars(validate_cars_bulk(rows))
    return api_ok({"inserted": len(cars)}, status=201)


@bp.route('/<int:car_id>', methods=['PUT'])
@login_required
@admin_required
def update_car(car_id):
    car = db.session.get(Car, car_id)
    if car is None:
        return api_error("not_found", MSG_NOT_FOUND, status=404)
    for key, value in validate_car(get_json_body()).items():
        setattr(car, key, value)
    db.session.commit()
    return api_ok(car.to_dict())


@bp.route('/<int:car_id>', methods=['DELETE'])
@login_required
@admin_required
def delete_car(car_id):
    car = db.session.get(Car, car_id)
    if car is None:
        return api_error("not_found", MSG_NOT_FOUND, status=404)
    db.session.delete(car)
    db.session.commit()
    current_app.logger.info("[ADMIN] car deleted id=%s by user=%s", car_id, current_user.id)
    return api_ok({"deleted": car_id})
