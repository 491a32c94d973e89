"""Shared fixtures for the voting engine tests"""

import hashlib
import sys
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from voting.balances import InMemoryBalanceOracle
from voting.engine import VotingEngine
from voting.storage import InMemoryKeyedStore
from zk.verifier import StaticProofVerifier
from zk.witness import GNARK_PROOF_SIZE, build_public_witness

START_TIME = 1_700_000_000
VOTING_PERIOD = 3600
MINT = "GOV-TOKEN"
CREATOR = "dao_admin"
THRESHOLD = 100
OPTIONS = ["Yes", "No", "Abstain"]


class FakeClock:
    """Clock the tests move by hand"""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryKeyedStore()


@pytest.fixture
def oracle():
    return InMemoryBalanceOracle()


@pytest.fixture
def verifier():
    return StaticProofVerifier(accept=True)


@pytest.fixture
def engine(store, oracle, verifier, clock):
    return VotingEngine(store, oracle, verifier, clock=clock)


@pytest.fixture
def proposal(engine):
    return engine.create_proposal(
        CREATOR, 1, "Fund the grants program", OPTIONS, MINT,
        THRESHOLD, VOTING_PERIOD)


@pytest.fixture
def voter(oracle):
    oracle.open_account("alice", MINT, amount=500)
    return "alice"


def make_vote(seed, proposal_id: int = 1, threshold: int = THRESHOLD,
              proof_size: int = GNARK_PROOF_SIZE):
    """Well-formed cast_vote arguments derived from ``seed``"""
    seed = str(seed).encode()
    nullifier = hashlib.sha256(b"nullifier:" + seed).digest()
    commitment = hashlib.sha256(b"commitment:" + seed).digest()
    return {
        'nullifier': nullifier,
        'vote_commitment': commitment,
        'proof': b"\x01" * proof_size,
        'public_witness': build_public_witness(
            threshold, proposal_id, commitment, nullifier),
    }


@pytest.fixture
def vote_factory():
    return make_vote
