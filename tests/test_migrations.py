"""
Тесты alembic миграций на файловой SQLite.
"""

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from affiliate_engine.db.models import Base

ROOT = Path(__file__).resolve().parent.parent


def alembic_config(db_path) -> Config:
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "affiliate_engine" / "db" / "migrations"))
    config.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{db_path}")
    config.attributes["configure_logger"] = False
    return config


def test_upgrade_creates_model_tables(tmp_path):
    db_path = tmp_path / "migrated.db"

    command.upgrade(alembic_config(db_path), "head")

    inspector = inspect(create_engine(f"sqlite:///{db_path}"))
    tables = set(inspector.get_table_names())
    assert set(Base.metadata.tables) <= tables

    for name, table in Base.metadata.tables.items():
        columns = {column["name"] for column in inspector.get_columns(name)}
        assert columns == {column.name for column in table.columns}, name


def test_downgrade_drops_everything(tmp_path):
    db_path = tmp_path / "migrated.db"
    config = alembic_config(db_path)

    command.upgrade(config, "head")
    command.downgrade(config, "base")

    tables = set(inspect(create_engine(f"sqlite:///{db_path}")).get_table_names())
    assert tables <= {"alembic_version"}
