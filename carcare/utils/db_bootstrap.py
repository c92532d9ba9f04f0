import os

from sqlalchemy import inspect

from carcare.models import Branch, Car, User, ROLE_ADMIN, ROLE_EMPLOYEE

SEED_BRANCHES = [
    ("الفرع الرئيسي", "القاهرة"),
    ("فرع الإسكندرية", "الإسكندرية"),
    ("فرع الجيزة", "الجيزة"),
]

# brand, model, year_from, year_to, engine_size, oil_type, oil_viscosity, oil_quantity
SEED_CARS = [
    ("Toyota", "Camry", 2018, 2024, "2.5L", "Toyota Genuine", "0W-20", 4.5),
    ("Toyota", "Camry", 2012, 2017, "2.5L", "Toyota Genuine", "5W-30", 4.5),
    ("Toyota", "Corolla", 2019, 2024, "1.8L", "Toyota Genuine", "0W-20", 4.0),
    ("Toyota", "Corolla", 2014, 2018, "1.8L", "Toyota Genuine", "5W-30", 4.0),
    ("Toyota", "Land Cruiser", 2016, 2024, "4.5L", "Toyota Genuine", "5W-30", 8.0),
    ("Toyota", "Hilux", 2016, 2024, "2.7L", "Toyota Genuine", "5W-30", 5.5),
    ("Toyota", "Yaris", 2018, 2024, "1.5L", "Toyota Genuine", "0W-20", 3.5),
    ("Hyundai", "Elantra", 2017, 2024, "1.6L", "Hyundai Genuine", "5W-30", 4.0),
    ("Hyundai", "Accent", 2018, 2024, "1.4L", "Hyundai Genuine", "5W-30", 3.5),
    ("Hyundai", "Tucson", 2016, 2024, "2.0L", "Hyundai Genuine", "5W-30", 4.5),
    ("Hyundai", "Sonata", 2015, 2024, "2.4L", "Hyundai Genuine", "5W-20", 5.0),
    ("Nissan", "Sunny", 2015, 2024, "1.5L", "Nissan Genuine", "5W-30", 3.5),
    ("Nissan", "Sentra", 2016, 2024, "1.8L", "Nissan Genuine", "5W-30", 4.0),
    ("Nissan", "X-Trail", 2017, 2024, "2.5L", "Nissan Genuine", "5W-30", 5.0),
    ("Nissan", "Patrol", 2010, 2024, "5.6L", "Nissan Genuine", "5W-30", 7.5),
    ("Kia", "Cerato", 2016, 2024, "1.6L", "Kia Genuine", "5W-30", 4.0),
    ("Kia", "Sportage", 2017, 2024, "2.0L", "Kia Genuine", "5W-30", 4.5),
    ("Kia", "Picanto", 2017, 2024, "1.2L", "Kia Genuine", "5W-30", 3.0),
    ("Chevrolet", "Cruze", 2015, 2020, "1.8L", "GM Genuine", "5W-30", 4.0),
    ("Chevrolet", "Aveo", 2014, 2020, "1.6L", "GM Genuine", "5W-30", 3.5),
    ("BMW", "320i", 2016, 2024, "2.0L", "BMW Longlife", "0W-30", 5.0),
    ("BMW", "520i", 2017, 2024, "2.0L", "BMW Longlife", "0W-30", 5.5),
    ("BMW", "X5", 2014, 2024, "3.0L", "BMW Longlife", "0W-40", 6.5),
    ("Mercedes-Benz", "C200", 2015, 2024, "2.0L", "Mercedes-Benz Genuine", "5W-30", 5.5),
    ("Mercedes-Benz", "E200", 2016, 2024, "2.0L", "Mercedes-Benz Genuine", "5W-30", 6.0),
    ("Mercedes-Benz", "GLC", 2016, 2024, "2.0L", "Mercedes-Benz Genuine", "5W-30", 5.5),
    ("Honda", "Civic", 2016, 2024, "1.5L", "Honda Genuine", "0W-20", 3.5),
    ("Honda", "Accord", 2018, 2024, "1.5L", "Honda Genuine", "0W-20", 4.0),
    ("Honda", "CR-V", 2017, 2024, "1.5L", "Honda Genuine", "0W-20", 4.0),
]

CAR_COLUMNS = ("brand", "model", "year_from", "year_to", "engine_size", "oil_type", "oil_viscosity", "oil_quantity")


def tables_ready(db) -> bool:
    inspector = inspect(db.engine)
    return all(inspector.has_table(name) for name in ("branches", "users", "cars", "operations"))


def seed_database(db, logger) -> bool:
    """
    Insert demo branches, the two default accounts and the reference car
    table. Does nothing when branches already exist.
    """
    if Branch.query.first() is not None:
        logger.info("[SEED] data already exists; skipping seed")
        return False

    branches = [Branch(name=name, location=location) for name, location in SEED_BRANCHES]
    db.session.add_all(branches)
    db.session.flush()

    admin = User(username="admin", name="مدير النظام", role=ROLE_ADMIN, branch_id=branches[0].id)
    admin.set_password(os.environ.get("SEED_ADMIN_PASSWORD", "admin123"))
    employee = User(username="employee1", name="أحمد محمد", role=ROLE_EMPLOYEE, branch_id=branches[0].id)
    employee.set_password(os.environ.get("SEED_EMPLOYEE_PASSWORD", "123456"))
    db.session.add_all([admin, employee])

    db.session.add_all(Car(**dict(zip(CAR_COLUMNS, row))) for row in SEED_CARS)
    db.session.commit()
    logger.info("[SEED] seeded %d branches, 2 users, %d cars", len(SEED_BRANCHES), len(SEED_CARS))
    return True
