"""
Schema deployment through Flask-Migrate (`flask db upgrade`).

Runs the real Alembic environment against a throwaway SQLite file.
"""

import os

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError

from orderpay import create_app
from orderpay.extensions import db
from orderpay.models import User


MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "migrations")

SCHEMA_TABLES = {"products", "orders", "order_details", "users", "payments", "transaction_history"}


@pytest.fixture
def migration_app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'migrate.db'}",
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.engine.dispose()


def _flask_db(app, *args):
    result = app.test_cli_runner().invoke(args=["db", *args, "-d", MIGRATIONS_DIR])
    assert result.exit_code == 0, result.output + repr(result.exception)
    return result


def test_upgrade_creates_schema(migration_app):
    _flask_db(migration_app, "upgrade")

    tables = set(inspect(db.engine).get_table_names())
    assert SCHEMA_TABLES <= tables

    version = db.session.execute(text("SELECT version_num FROM alembic_version")).scalar()
    assert version == "20261018_initial"


def test_upgraded_schema_enforces_balance_check(migration_app):
    _flask_db(migration_app, "upgrade")

    db.session.add(User(uid="u1", balance=-1))
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def test_downgrade_to_base_drops_schema(migration_app):
    _flask_db(migration_app, "upgrade")
    _flask_db(migration_app, "downgrade", "base")

    tables = set(inspect(db.engine).get_table_names())
    assert not (SCHEMA_TABLES & tables)
