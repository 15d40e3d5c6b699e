import pytest

from propsync.engine import SyncEngine
from propsync.schemas import SCHEDULER, SECURITY_CHECKLIST
from propsync.store import InMemoryDocumentStore


@pytest.fixture(autouse=True)
def isolated_home(monkeypatch, tmp_path):
    # Never read a developer's real ~/.config/propsync
    home = tmp_path / "propsync_home"
    monkeypatch.setenv("PROPSYNC_HOME", str(home))
    return home


@pytest.fixture
def building() -> str:
    return "bldg-1"


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def seed(store):
    """Write documents straight into the store (each needs an 'id')."""
    def _seed(path: str, docs: list[dict]) -> None:
        for doc in docs:
            store.put(path, doc["id"], dict(doc))
    return _seed


@pytest.fixture
def mon_path(building) -> str:
    return SCHEDULER.path(building, "mon")


@pytest.fixture
def seeded_store(store, seed, mon_path) -> InMemoryDocumentStore:
    """Monday holds templates a and b; every other day is empty."""
    seed(mon_path, [
        {"id": "a", "title": "Lobby mop", "order": 0, "active": True},
        {"id": "b", "title": "Trash run", "order": 1, "active": True},
    ])
    return store


@pytest.fixture
def actor() -> dict:
    return {"id": "u1", "name": "Sam", "role": "manager"}


@pytest.fixture
def engine(seeded_store, building, actor) -> SyncEngine:
    return SyncEngine(seeded_store, SCHEDULER, scope=building, actor=actor)


@pytest.fixture
def checklist_engine(store, building) -> SyncEngine:
    return SyncEngine(store, SECURITY_CHECKLIST, scope=building)
