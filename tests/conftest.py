import pytest

from ballotchain import config
from ballotchain.chain.ledger import ElectionLedger
from ballotchain.metrics import metrics
from ballotchain.storage.memory import MemoryDocumentStore

CANDIDATES = [("candidateA", "Alice Smith"), ("candidateB", "Bob Johnson"), ("candidateC", "Charlie Brown")]


@pytest.fixture(autouse=True)
def reset_ballotchain_state(monkeypatch, tmp_path):
    """Reset config and metrics between every test."""
    monkeypatch.setenv("BALLOTCHAIN_DB", str(tmp_path / "ballotchain.db"))
    monkeypatch.setenv("BALLOTCHAIN_STORAGE", "sqlite")
    monkeypatch.setenv("BALLOTCHAIN_DIFFICULTY", "1")
    monkeypatch.delenv("BALLOTCHAIN_AUTO_SEAL", raising=False)
    monkeypatch.delenv("BALLOTCHAIN_CANDIDATES", raising=False)
    config.reload()
    metrics.reset()

    yield

    monkeypatch.undo()
    config.reload()
    metrics.reset()


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
async def ledger(store):
    """Loaded ledger over an in-memory store, election closed, no voters."""
    await store.connect()
    ledger = ElectionLedger(store, difficulty=1, mining_reward=1, candidates=CANDIDATES)
    await ledger.load()
    return ledger


@pytest.fixture
async def open_ledger(ledger):
    """Loaded ledger with the election open and voters v1..v3 registered."""
    for voter in ("v1", "v2", "v3"):
        await ledger.register_voter(voter)
    await ledger.set_election_status(True)
    return ledger
