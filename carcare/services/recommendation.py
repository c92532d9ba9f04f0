# -*- coding: utf-8 -*-
"""
Recommendation resolver: car facts -> reference row from the cars table.
Answers are restricted to rows that exist; nothing is ever invented.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import func

from carcare.models import Car


def normalize_key(value: Any) -> str:
    return " ".join(str(value or "").split()).lower()


def find_candidates(brand: str, model: str, year: int, engine_size: str) -> List[Car]:
    """
    All reference rows for (brand, model, engine) whose year range contains
    ``year``. Brand/model/engine are compared case-insensitively.
    """
    return (
        Car.query.filter(
            func.lower(Car.brand) == normalize_key(brand),
            func.lower(Car.model) == normalize_key(model),
            func.lower(Car.engine_size) == normalize_key(engine_size),
            Car.year_from <= int(year),
            Car.year_to >= int(year),
        )
        .order_by(Car.year_from.desc(), Car.id.asc())
        .all()
    )


def pick_candidate(candidates: List[Car]) -> Optional[Car]:
    """Overlapping ranges resolve to the newest range (lowest id on ties)."""
    if not candidates:
        return None
    return sorted(candidates, key=lambda c: (-c.year_from, c.id))[0]


def resolve_recommendation(brand: str, model: str, year: int, engine_size: str) -> Optional[Car]:
    """The reference row for this car, or None when no row covers it."""
    return pick_candidate(find_candidates(brand, model, year, engine_size))


def recommended_spec(car: Optional[Car]) -> Optional[Dict[str, Any]]:
    if car is None:
        return None
    spec = car.oil_spec()
    spec["reference_id"] = car.id
    spec["year_from"] = car.year_from
    spec["year_to"] = car.year_to
    return spec


# --- progressive form lookups ---

def list_brands() -> List[str]:
    rows = Car.query.with_entities(Car.brand).distinct().order_by(Car.brand.asc()).all()
    return [r[0] for r in rows]


def list_models(brand: str) -> List[str]:
    rows = (
        Car.query.with_entities(Car.model)
        .filter(func.lower(Car.brand) == normalize_key(brand))
        .distinct()
        .order_by(Car.model.asc())
        .all()
    )
    return [r[0] for r in rows]


def list_engines(brand: str, model: str) -> List[str]:
    rows = (
        Car.query.with_entities(Car.engine_size)
        .filter(
            func.lower(Car.brand) == normalize_key(brand),
            func.lower(Car.model) == normalize_key(model),
        )
        .distinct()
        .order_by(Car.engine_size.asc())
        .all()
    )
    return [r[0] for r in rows]
