"""Keyed store: exclusive create, transactions, JSON persistence"""

import json

import pytest

from conftest import CREATOR, MINT, OPTIONS
from voting.balances import InMemoryBalanceOracle
from voting.engine import VotingEngine
from voting.models import Proposal, ProposalResults, VoteRecord
from voting.storage import (
    FileKeyedStore,
    InMemoryKeyedStore,
    KeyExistsError,
    KeyNotFoundError,
)
from zk.verifier import StaticProofVerifier


def _results(tallies=None):
    return ProposalResults(proposal="p", tallies=tallies or [0, 0])


class TestInMemoryKeyedStore:

    def test_create_is_exclusive(self):
        store = InMemoryKeyedStore()
        store.create("k", _results())

        with pytest.raises(KeyExistsError):
            store.create("k", _results([5, 5]))
        assert store.get("k").tallies == [0, 0]

    def test_get_missing(self):
        assert InMemoryKeyedStore().get("missing") is None

    def test_get_returns_copy(self):
        store = InMemoryKeyedStore()
        store.create("k", _results())

        store.get("k").tallies[0] = 9
        assert store.get("k").tallies == [0, 0]

    def test_transaction_commits_all_writes(self):
        store = InMemoryKeyedStore()
        store.create("a", _results())

        with store.transaction() as txn:
            txn.create("b", _results([1, 1]))
            txn.update("a", lambda r: r.tallies.__setitem__(0, 3))

        assert store.get("a").tallies == [3, 0]
        assert store.get("b").tallies == [1, 1]

    def test_exception_discards_transaction(self):
        store = InMemoryKeyedStore()

        with pytest.raises(RuntimeError):
            with store.transaction() as txn:
                txn.create("a", _results())
                raise RuntimeError("abort")

        assert len(store) == 0

    def test_failed_update_discards_creates(self):
        store = InMemoryKeyedStore()

        with pytest.raises(KeyNotFoundError):
            with store.transaction() as txn:
                txn.create("a", _results())
                txn.update("missing", lambda r: None)

        assert not store.exists("a")

    def test_guard_raised_in_update_discards_everything(self):
        store = InMemoryKeyedStore()
        store.create("a", _results())

        def refuse(record):
            record.tallies[0] = 100
            raise ValueError("guard")

        with pytest.raises(ValueError):
            with store.transaction() as txn:
                txn.create("b", _results())
                txn.update("a", refuse)

        assert store.get("a").tallies == [0, 0]
        assert not store.exists("b")

    def test_create_conflict_at_commit(self):
        store = InMemoryKeyedStore()
        with pytest.raises(KeyExistsError):
            with store.transaction() as txn:
                txn.create("a", _results())
                store.create("a", _results([7, 7]))

        assert store.get("a").tallies == [7, 7]

    def test_updates_see_each_other(self):
        store = InMemoryKeyedStore()
        store.create("a", _results())

        with store.transaction() as txn:
            txn.update("a", lambda r: r.tallies.__setitem__(0, r.tallies[0] + 1))
            txn.update("a", lambda r: r.tallies.__setitem__(0, r.tallies[0] + 1))

        assert store.get("a").tallies == [2, 0]

    def test_records_of_type(self):
        store = InMemoryKeyedStore()
        store.create("r", _results())
        store.create("v", VoteRecord("p", b"\x01" * 32, b"\x02" * 32, 0))

        assert len(store.records_of_type(ProposalResults)) == 1
        assert len(store.records_of_type(VoteRecord)) == 1
        assert store.records_of_type(Proposal) == []


class TestFileKeyedStore:

    def _engine(self, path, clock):
        oracle = InMemoryBalanceOracle()
        oracle.open_account("alice", MINT, amount=1000)
        return VotingEngine(FileKeyedStore(path), oracle,
                            StaticProofVerifier(), clock=clock)

    def test_state_survives_reopen(self, tmp_path, clock, vote_factory):
        path = tmp_path / "store.json"
        engine = self._engine(path, clock)
        engine.create_proposal(CREATOR, 1, "Persisted", OPTIONS, MINT, 100, 60)
        vote = vote_factory("alice")
        engine.cast_vote(1, "alice", **vote)

        reopened = self._engine(path, clock)

        proposal = reopened.get_proposal(1)
        assert proposal.title == "Persisted"
        assert proposal.options == OPTIONS
        assert proposal.vote_count == 1
        record = reopened.get_vote_record(1, vote['nullifier'])
        assert record.vote_commitment == vote['vote_commitment']
        assert reopened.get_results(1).tallies == [0, 0, 0]

    def test_file_layout(self, tmp_path):
        path = tmp_path / "nested" / "store.json"
        store = FileKeyedStore(path)
        store.create("k", _results([1, 2]))

        with open(path) as f:
            data = json.load(f)
        assert data == {
            "k": {
                "type": "ProposalResults",
                "data": {"proposal": "p", "tallies": [1, 2], "is_finalized": False},
            }
        }

    def test_failed_commit_leaves_file_untouched(self, tmp_path):
        path = tmp_path / "store.json"
        store = FileKeyedStore(path)
        store.create("k", _results())
        before = path.read_text()

        with pytest.raises(KeyExistsError):
            store.create("k", _results([3, 3]))

        assert path.read_text() == before
        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]
