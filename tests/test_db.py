from sqlalchemy import inspect

from weeknight import db


def test_create_all_builds_schema(monkeypatch):
    monkeypatch.setattr(db, "_engine", None)
    monkeypatch.setattr(db, "_SessionLocal", None)
    engine = db.init_engine("sqlite://")

    db.create_all()

    tables = set(inspect(engine).get_table_names())
    assert {"recipes", "recipe_steps", "substitutions", "dinner_suggestions", "leftovers"} <= tables

    session = db.SessionLocal()()
    try:
        assert session.bind is engine
    finally:
        session.close()
