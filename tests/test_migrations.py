import pytest
from sqlalchemy import create_engine, inspect, text

from billing_mcp.config import Config, DatabaseConfig
from billing_mcp.migrations import MigrationError, Migrator, run_migrations, run_seeds


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'migrate.db'}"


@pytest.fixture
def source(tmp_path):
    directory = tmp_path / "schema"
    directory.mkdir()
    (directory / "1_create.up.sql").write_text(
        "CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT);", encoding="utf-8"
    )
    (directory / "1_create.down.sql").write_text("DROP TABLE items;", encoding="utf-8")
    (directory / "2_seed.up.sql").write_text(
        "INSERT INTO items (name) VALUES ('a');\nINSERT INTO items (name) VALUES ('b');",
        encoding="utf-8",
    )
    (directory / "README.md").write_text("notes", encoding="utf-8")
    return directory


def _table_names(url):
    engine = create_engine(url)
    try:
        return set(inspect(engine).get_table_names())
    finally:
        engine.dispose()


def test_up_applies_all_in_order(source, db_url):
    with Migrator(source, db_url) as migrator:
        assert migrator.up() == 2
        assert migrator.version() == (2, False)
    engine = create_engine(db_url)
    with engine.connect() as conn:
        names = [row[0] for row in conn.execute(text("SELECT name FROM items ORDER BY id"))]
    engine.dispose()
    assert names == ["a", "b"]


def test_second_up_is_no_change(source, db_url):
    with Migrator(source, db_url) as migrator:
        migrator.up()
    with Migrator(source, db_url) as migrator:
        assert migrator.up() == 0
        assert migrator.version() == (2, False)


def test_new_file_is_applied_later(source, db_url):
    with Migrator(source, db_url) as migrator:
        migrator.up()
    (source / "3_more.up.sql").write_text("CREATE TABLE more (id INTEGER);", encoding="utf-8")
    with Migrator(source, db_url) as migrator:
        assert migrator.up() == 1
        assert migrator.version() == (3, False)
    assert "more" in _table_names(db_url)


def test_version_without_migrations_raises(source, db_url):
    with Migrator(source, db_url) as migrator:
        with pytest.raises(MigrationError, match="no migration"):
            migrator.version()


def test_file_scheme_prefix_is_accepted(source, db_url):
    with Migrator(f"file://{source}", db_url) as migrator:
        assert migrator.up() == 2


def test_missing_source_raises(tmp_path, db_url):
    with pytest.raises(MigrationError):
        Migrator(tmp_path / "absent", db_url)


def test_duplicate_versions_raise(source, db_url):
    (source / "2_other.up.sql").write_text("SELECT 1;", encoding="utf-8")
    with pytest.raises(MigrationError, match="duplicate"):
        Migrator(source, db_url)


def test_failed_migration_leaves_dirty_version(source, db_url):
    (source / "3_broken.up.sql").write_text("CREATE TABLE broken (", encoding="utf-8")
    with Migrator(source, db_url) as migrator:
        with pytest.raises(MigrationError):
            migrator.up()
        assert migrator.version() == (3, True)
        with pytest.raises(MigrationError, match="Dirty database version 3"):
            migrator.up()


def test_custom_table_parameter(source, db_url):
    with Migrator(source, f"{db_url}?x-migrations-table=seed_migrations") as migrator:
        assert migrator.table_name == "seed_migrations"
        migrator.up()
    tables = _table_names(db_url)
    assert "seed_migrations" in tables
    assert "schema_migrations" not in tables


def test_default_table_name(source, db_url):
    with Migrator(source, db_url) as migrator:
        migrator.up()
    assert "schema_migrations" in _table_names(db_url)


def _config():
    return Config(database=DatabaseConfig(host="127.0.0.1", port=1, user="user", dbname="billing"))


def test_run_migrations_missing_path(tmp_path):
    with pytest.raises(MigrationError, match="failed to create migrate instance"):
        run_migrations(_config(), tmp_path / "absent")


def test_run_seeds_missing_path(tmp_path):
    with pytest.raises(MigrationError, match="failed to create migrate instance for seeds"):
        run_seeds(_config(), tmp_path / "absent")