import pathlib
import re

from grain.store import RecordStore, SqlRecordStore

GRAIN_ROOT = pathlib.Path(__file__).resolve().parents[1] / "grain"


def _protocol_members():
    names = {n for n in vars(RecordStore) if not n.startswith("_")}
    return names | set(getattr(RecordStore, "__annotations__", {}))


def test_sql_store_implements_every_protocol_member(store):
    missing = [name for name in sorted(_protocol_members()) if not hasattr(store, name)]

    assert missing == []
    assert isinstance(store, SqlRecordStore)


def test_services_only_use_protocol_members():
    used = set()
    for path in list((GRAIN_ROOT / "services").glob("*.py")) + list((GRAIN_ROOT / "api").rglob("*.py")):
        used |= set(re.findall(r"\bstore\.([a-z_]+)", path.read_text()))

    assert used
    assert sorted(used - _protocol_members()) == []


def test_event_columns():
    from grain.models import Event

    assert set(Event.__table__.columns.keys()) == {
        "id",
        "type",
        "timestamp",
        "summary",
        "details_json",
        "confidence",
        "derived",
        "created_at",
    }
