import pytest

from ctgmonitor.database import DatabaseError, connect, migrate

FIRST = """-- +goose Up
CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT);
INSERT INTO items (name) VALUES ('a');

-- +goose Down
DROP TABLE items;
"""

SECOND = """-- +goose Up
-- +goose StatementBegin
CREATE TRIGGER items_upper AFTER INSERT ON items
BEGIN
  UPDATE items SET name = upper(name) WHERE id = new.id;
END;
-- +goose StatementEnd
-- +goose Down
DROP TRIGGER items_upper;
"""


@pytest.fixture
def migrations(tmp_path):
    folder = tmp_path / "migrations"
    folder.mkdir()
    (folder / "001_items.sql").write_text(FIRST, encoding="utf-8")
    (folder / "002_trigger.sql").write_text(SECOND, encoding="utf-8")
    (folder / "README.md").write_text("ignored", encoding="utf-8")
    return folder


@pytest.mark.parametrize("driver,dsn,message", [
    ("", "x.db", "empty driver"),
    ("sqlite", "", "empty dsn"),
])
def test_connect_requires_settings(driver, dsn, message):
    with pytest.raises(DatabaseError, match=message):
        connect(driver, dsn)


def test_connect_unknown_driver():
    with pytest.raises(DatabaseError):
        connect("postgres", "x")


def test_migrate_applies_once(tmp_path, migrations):
    dsn = str(tmp_path / "db.sqlite")
    assert migrate("sqlite", dsn, migrations) == [1, 2]
    assert migrate("sqlite", dsn, migrations) == []
    with connect("sqlite", dsn) as db:
        assert db.fetch_one("SELECT COUNT(*) AS n FROM items")["n"] == 1
        db.execute("INSERT INTO items (name) VALUES (?)", "bob")
        row = db.fetch_one("SELECT name FROM items ORDER BY id DESC LIMIT 1")
        assert row["name"] == "BOB"


def test_execute_returns_rowcount(tmp_path, migrations):
    dsn = str(tmp_path / "db.sqlite")
    migrate("sqlite", dsn, migrations)
    db = connect("sqlite", dsn)
    db.execute("INSERT INTO items (name) VALUES ('x')")
    assert db.execute("UPDATE items SET name = 'y'") == 2
    assert db.fetch_one("SELECT * FROM items WHERE id = ?", 999) is None
    db.close()
    with pytest.raises(DatabaseError):
        db.ping()


def test_bad_sql_raises(tmp_path):
    with connect("sqlite", str(tmp_path / "d.sqlite")) as db:
        with pytest.raises(DatabaseError):
            db.execute("SELECT FROM nowhere")


def test_failed_migration_rolls_back(tmp_path):
    folder = tmp_path / "m"
    folder.mkdir()
    (folder / "001_bad.sql").write_text(
        "-- +goose Up\nCREATE TABLE t (id INTEGER);\nBROKEN STATEMENT;\n",
        encoding="utf-8",
    )
    dsn = str(tmp_path / "db.sqlite")
    with pytest.raises(DatabaseError):
        migrate("sqlite", dsn, folder)
    with connect("sqlite", dsn) as db:
        row = db.fetch_one(
            "SELECT COUNT(*) AS n FROM sqlite_master WHERE name = 't'"
        )
        assert row["n"] == 0


def test_missing_directory(tmp_path):
    with pytest.raises(DatabaseError):
        migrate("sqlite", str(tmp_path / "db.sqlite"), tmp_path / "nope")