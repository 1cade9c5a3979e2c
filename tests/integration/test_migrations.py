"""Checks that the Alembic migration builds the same schema as the models."""

import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from flowcraft.db.base import Base

MIGRATION = Path(__file__).resolve().parents[2] / "migrations" / "versions" / "add_flows_001.py"


def load_migration():
    spec = importlib.util.spec_from_file_location("add_flows_001", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def unique_sets(inspector, table):
    sets = {tuple(sorted(c["column_names"])) for c in inspector.get_unique_constraints(table)}
    sets |= {tuple(sorted(i["column_names"])) for i in inspector.get_indexes(table) if i["unique"]}
    return sets


def index_names(inspector, table):
    return {i["name"] for i in inspector.get_indexes(table) if i["name"] and not i["unique"]}


@pytest.fixture
def migrated_engine():
    engine = create_engine("sqlite://")
    migration = load_migration()
    with engine.begin() as conn:
        ctx = MigrationContext.configure(conn)
        with Operations.context(ctx):
            migration.upgrade()
    yield engine
    engine.dispose()


@pytest.fixture
def model_engine():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


def test_tables_match(migrated_engine, model_engine) -> None:
    assert set(inspect(migrated_engine).get_table_names()) == set(Base.metadata.tables)
    assert set(inspect(model_engine).get_table_names()) == set(Base.metadata.tables)


@pytest.mark.parametrize("table", sorted(Base.metadata.tables))
def test_columns_match(migrated_engine, model_engine, table) -> None:
    migrated = {c["name"]: c["nullable"] for c in inspect(migrated_engine).get_columns(table)}
    modeled = {c["name"]: c["nullable"] for c in inspect(model_engine).get_columns(table)}
    assert migrated == modeled


@pytest.mark.parametrize("table", sorted(Base.metadata.tables))
def test_unique_keys_match(migrated_engine, model_engine, table) -> None:
    assert unique_sets(inspect(migrated_engine), table) == unique_sets(inspect(model_engine), table)


@pytest.mark.parametrize("table", sorted(Base.metadata.tables))
def test_indexes_match(migrated_engine, model_engine, table) -> None:
    assert index_names(inspect(migrated_engine), table) == index_names(inspect(model_engine), table)


def test_downgrade_drops_everything(migrated_engine) -> None:
    migration = load_migration()
    with migrated_engine.begin() as conn:
        ctx = MigrationContext.configure(conn)
        with Operations.context(ctx):
            migration.downgrade()
    assert inspect(migrated_engine).get_table_names() == []
