import uuid

import pytest
from sqlalchemy import String, inspect, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from billing_mcp.persistence.database import (
    Base,
    BaseModel,
    DatabaseConnectionError,
    create_sql_engine,
)


class _Note(BaseModel):
    __tablename__ = "test_notes"

    text: Mapped[str] = mapped_column(String, default="")


@pytest.fixture
def engine(tmp_path):
    eng = create_sql_engine(f"sqlite:///{tmp_path / 'db.sqlite'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


def test_create_engine_for_sqlite(tmp_path):
    eng = create_sql_engine(f"sqlite:///{tmp_path / 'a.sqlite'}")
    try:
        assert eng.dialect.name == "sqlite"
    finally:
        eng.dispose()


def test_invalid_url_raises_connection_error():
    with pytest.raises(DatabaseConnectionError) as info:
        create_sql_engine("not a url")
    assert str(info.value) == "failed to connect to PostgreSQL database"


def test_unreachable_database_raises(tmp_path):
    missing = tmp_path / "missing" / "dir" / "db.sqlite"
    with pytest.raises(DatabaseConnectionError):
        create_sql_engine(f"sqlite:///{missing}")


def test_id_generated_when_absent(engine):
    with Session(engine) as session:
        note = _Note(text="hello")
        session.add(note)
        session.commit()
        assert isinstance(note.id, uuid.UUID)
        assert note.id.version == 4


def test_nil_id_replaced_on_insert(engine):
    with Session(engine) as session:
        note = _Note(id=uuid.UUID(int=0), text="nil")
        session.add(note)
        session.commit()
        assert note.id.int != 0
        assert note.id.version == 4


def test_explicit_id_kept(engine):
    chosen = uuid.uuid4()
    with Session(engine) as session:
        session.add(_Note(id=chosen, text="kept"))
        session.commit()
    with Session(engine) as session:
        stored = session.scalars(select(_Note).where(_Note.id == chosen)).one()
        assert stored.text == "kept"


def test_timestamps_set_and_not_deleted(engine):
    with Session(engine) as session:
        note = _Note(text="time")
        session.add(note)
        session.commit()
        assert note.created_at is not None and note.updated_at is not None
        assert note.deleted_at is None


def test_deleted_at_is_indexed(engine):
    indexes = inspect(engine).get_indexes("test_notes")
    assert ["deleted_at"] in [index["column_names"] for index in indexes]