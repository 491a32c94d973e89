"""Vote casting: window, eligibility, proof material binding, uniqueness"""

import threading

import pytest

from conftest import MINT, THRESHOLD
from voting.engine import VotingEngine
from voting.errors import (
    CommitmentMismatch,
    InsufficientTokens,
    InvalidProof,
    InvalidPublicWitness,
    InvalidTokenMint,
    InvalidTokenOwner,
    InvalidVerifierProgram,
    NullifierAlreadyUsed,
    NullifierMismatch,
    ProposalIdMismatch,
    ProposalNotFound,
    ThresholdMismatch,
    VotingEnded,
    VotingNotStarted,
)
from voting.keys import vote_record_address
from zk.verifier import ProofServerVerifier, StaticProofVerifier, VerifierUnavailableError
from zk.witness import build_public_witness


class ExplodingVerifier(StaticProofVerifier):
    def verify(self, proof, public_witness):
        super().verify(proof, public_witness)
        raise VerifierUnavailableError("proof server unreachable")


class ReplyingSession:
    """HTTP session double whose /verify-proof reply is a fixed JSON body"""

    def __init__(self, payload):
        self.payload = payload

    def post(self, url, **kwargs):
        return self

    def raise_for_status(self):
        pass

    def json(self):
        return self.payload


class TestValidVote:

    def test_records_vote(self, engine, store, verifier, proposal, voter, vote_factory):
        vote = vote_factory("alice")

        record = engine.cast_vote(proposal.id, voter, **vote)

        assert record.proposal == proposal.address
        assert record.nullifier == vote['nullifier']
        assert record.vote_commitment == vote['vote_commitment']
        assert record.timestamp == proposal.start_time
        assert not record.is_revealed
        assert record.revealed_choice is None

        assert engine.get_proposal(proposal.id).vote_count == 1
        assert engine.get_vote_record(proposal.id, vote['nullifier']) == record
        assert store.exists(vote_record_address(
            engine.program_id, proposal.address, vote['nullifier']))
        assert verifier.calls == [(vote['proof'], vote['public_witness'])]

    def test_tallies_untouched_by_cast(self, engine, proposal, voter, vote_factory):
        engine.cast_vote(proposal.id, voter, **vote_factory("alice"))
        assert engine.get_results(proposal.id).tallies == [0, 0, 0]

    def test_unknown_proposal(self, engine, voter, vote_factory):
        with pytest.raises(ProposalNotFound):
            engine.cast_vote(77, voter, **vote_factory("x", proposal_id=77))

    def test_nullifier_must_be_32_bytes(self, engine, proposal, voter, vote_factory):
        vote = vote_factory("alice")
        vote['nullifier'] = vote['nullifier'][:31]
        with pytest.raises(ValueError):
            engine.cast_vote(proposal.id, voter, **vote)


class TestVotingWindow:

    def test_before_start(self, engine, clock, verifier, proposal, voter, vote_factory):
        clock.now = proposal.start_time - 1
        with pytest.raises(VotingNotStarted):
            engine.cast_vote(proposal.id, voter, **vote_factory("alice"))
        assert verifier.calls == []

    def test_at_end_time_is_accepted(self, engine, clock, proposal, voter, vote_factory):
        clock.now = proposal.end_time
        engine.cast_vote(proposal.id, voter, **vote_factory("alice"))
        assert engine.get_proposal(proposal.id).vote_count == 1

    def test_after_end(self, engine, clock, proposal, voter, vote_factory):
        clock.now = proposal.end_time + 1
        with pytest.raises(VotingEnded):
            engine.cast_vote(proposal.id, voter, **vote_factory("alice"))


class TestEligibility:

    def test_no_token_account(self, engine, verifier, proposal, vote_factory):
        with pytest.raises(InsufficientTokens):
            engine.cast_vote(proposal.id, "mallory", **vote_factory("m"))
        assert verifier.calls == []

    def test_balance_below_threshold(self, engine, oracle, proposal, vote_factory):
        oracle.open_account("bob", MINT, amount=THRESHOLD - 1)
        with pytest.raises(InsufficientTokens):
            engine.cast_vote(proposal.id, "bob", **vote_factory("bob"))

    def test_balance_equal_to_threshold(self, engine, oracle, proposal, vote_factory):
        oracle.open_account("bob", MINT, amount=THRESHOLD)
        engine.cast_vote(proposal.id, "bob", **vote_factory("bob"))

    def test_zero_threshold_admits_empty_account(self, engine, oracle, vote_factory):
        engine.create_proposal("c", 2, "open to all", ["a", "b"], MINT, 0, 60)
        oracle.open_account("carol", MINT, amount=0)
        engine.cast_vote(2, "carol", **vote_factory("carol", proposal_id=2, threshold=0))

    def test_topping_up_balance_makes_voter_eligible(self, engine, oracle, proposal, vote_factory):
        oracle.open_account("bob", MINT, amount=1)
        vote = vote_factory("bob")
        with pytest.raises(InsufficientTokens):
            engine.cast_vote(proposal.id, "bob", **vote)

        oracle.set_balance("bob", MINT, THRESHOLD)
        assert oracle.balance_of("bob", MINT) == THRESHOLD
        engine.cast_vote(proposal.id, "bob", **vote)

    def test_negative_balance_refused(self, oracle):
        with pytest.raises(ValueError):
            oracle.open_account("bob", MINT, amount=-1)

    def test_wrong_mint(self, engine, oracle, proposal, voter, vote_factory):
        account = oracle.open_account(voter, "OTHER-TOKEN", amount=10_000)
        with pytest.raises(InvalidTokenMint):
            engine.cast_vote(proposal.id, voter, token_account=account.address,
                             **vote_factory("alice"))

    def test_wrong_owner(self, engine, oracle, proposal, voter, vote_factory):
        account = oracle.open_account("whale", MINT, amount=10_000)
        with pytest.raises(InvalidTokenOwner):
            engine.cast_vote(proposal.id, voter, token_account=account.address,
                             **vote_factory("alice"))

    def test_explicit_token_account(self, engine, oracle, proposal, vote_factory):
        account = oracle.open_account("dave", MINT, amount=THRESHOLD, address="dave-vault")
        engine.cast_vote(proposal.id, "dave", token_account=account.address,
                         **vote_factory("dave"))


class TestProofMaterial:

    @pytest.mark.parametrize("size", [255, 453, 0])
    def test_proof_size_out_of_bounds(self, engine, verifier, proposal, voter, vote_factory, size):
        with pytest.raises(InvalidProof):
            engine.cast_vote(proposal.id, voter, **vote_factory("alice", proof_size=size))
        assert verifier.calls == []

    @pytest.mark.parametrize("size", [256, 388, 452])
    def test_proof_size_within_bounds(self, engine, proposal, voter, vote_factory, size):
        engine.cast_vote(proposal.id, voter, **vote_factory("alice", proof_size=size))

    def test_short_witness(self, engine, proposal, voter, vote_factory):
        vote = vote_factory("alice")
        vote['public_witness'] = vote['public_witness'][:139]
        with pytest.raises(InvalidPublicWitness):
            engine.cast_vote(proposal.id, voter, **vote)

    def test_wrong_input_count(self, engine, proposal, voter, vote_factory):
        vote = vote_factory("alice")
        vote['public_witness'] = b"\x00\x00\x00\x05" + vote['public_witness'][4:]
        with pytest.raises(InvalidPublicWitness):
            engine.cast_vote(proposal.id, voter, **vote)

    def test_threshold_mismatch(self, engine, proposal, voter, vote_factory):
        vote = vote_factory("alice", threshold=THRESHOLD - 1)
        with pytest.raises(ThresholdMismatch):
            engine.cast_vote(proposal.id, voter, **vote)

    def test_proposal_id_mismatch(self, engine, proposal, voter, vote_factory):
        vote = vote_factory("alice", proposal_id=proposal.id + 1)
        with pytest.raises(ProposalIdMismatch):
            engine.cast_vote(proposal.id, voter, **vote)

    def test_commitment_mismatch(self, engine, proposal, voter, vote_factory):
        vote = vote_factory("alice")
        vote['vote_commitment'] = vote_factory("someone")['vote_commitment']
        with pytest.raises(CommitmentMismatch):
            engine.cast_vote(proposal.id, voter, **vote)

    def test_nullifier_mismatch(self, engine, verifier, proposal, voter, vote_factory):
        vote = vote_factory("alice")
        vote['nullifier'] = vote_factory("someone")['nullifier']
        with pytest.raises(NullifierMismatch):
            engine.cast_vote(proposal.id, voter, **vote)
        assert verifier.calls == []

    @pytest.mark.parametrize("offset,error", [
        (43, ThresholdMismatch),
        (36, ThresholdMismatch),
        (75, ProposalIdMismatch),
        (68, ProposalIdMismatch),
        (76, CommitmentMismatch),
        (107, CommitmentMismatch),
        (108, NullifierMismatch),
        (139, NullifierMismatch),
    ])
    def test_single_byte_flip_in_witness(self, engine, store, verifier, voter,
                                         vote_factory, offset, error):
        proposal = engine.create_proposal("c", 42, "t", ["a", "b"], MINT, 100, 60)
        vote = vote_factory("alice", proposal_id=42, threshold=100)
        witness = bytearray(vote['public_witness'])
        witness[offset] ^= 0x01
        vote['public_witness'] = bytes(witness)
        before = len(store)

        with pytest.raises(error):
            engine.cast_vote(42, voter, **vote)

        assert len(store) == before
        assert not store.exists(vote_record_address(
            engine.program_id, proposal.address, vote['nullifier']))
        assert verifier.calls == []

    def test_mismatches_checked_in_order(self, engine, proposal, voter, vote_factory):
        vote = vote_factory("alice")
        vote['public_witness'] = build_public_witness(
            THRESHOLD + 1, proposal.id + 1, b"\x00" * 32, b"\x00" * 32)
        with pytest.raises(ThresholdMismatch):
            engine.cast_vote(proposal.id, voter, **vote)

    def test_witness_high_bytes_do_not_matter(self, engine, proposal, voter, vote_factory):
        vote = vote_factory("alice")
        witness = bytearray(vote['public_witness'])
        witness[12:36] = b"\xab" * 24
        vote['public_witness'] = bytes(witness)

        engine.cast_vote(proposal.id, voter, **vote)


class TestVerification:

    def test_rejected_proof(self, store, oracle, clock, voter, vote_factory):
        verifier = StaticProofVerifier(accept=False)
        engine = VotingEngine(store, oracle, verifier, clock=clock)
        engine.create_proposal("c", 1, "t", ["a", "b"], MINT, THRESHOLD, 60)

        with pytest.raises(InvalidProof):
            engine.cast_vote(1, voter, **vote_factory("alice"))
        assert len(verifier.calls) == 1
        assert engine.get_proposal(1).vote_count == 0

    def test_verifier_failure_is_a_rejection(self, store, oracle, clock, voter, vote_factory):
        engine = VotingEngine(store, oracle, ExplodingVerifier(), clock=clock)
        engine.create_proposal("c", 1, "t", ["a", "b"], MINT, THRESHOLD, 60)

        with pytest.raises(InvalidProof):
            engine.cast_vote(1, voter, **vote_factory("alice"))

    def test_unexpected_verifier_program(self, store, oracle, clock, voter, vote_factory):
        verifier = StaticProofVerifier(accept=True, program_id="rogue-verifier")
        engine = VotingEngine(store, oracle, verifier, clock=clock)
        engine.create_proposal("c", 1, "t", ["a", "b"], MINT, THRESHOLD, 60)

        with pytest.raises(InvalidVerifierProgram):
            engine.cast_vote(1, voter, **vote_factory("alice"))
        assert verifier.calls == []

    @pytest.mark.parametrize("payload", [
        {'valid': "false"},
        {'valid': 1},
        ["unexpected"],
    ])
    def test_proof_server_reply_must_be_literal_true(self, store, oracle, clock, voter,
                                                     vote_factory, payload):
        verifier = ProofServerVerifier(
            "http://prover", session=ReplyingSession(payload))
        engine = VotingEngine(store, oracle, verifier, clock=clock)
        engine.create_proposal("c", 1, "t", ["a", "b"], MINT, THRESHOLD, 60)
        before = len(store)

        with pytest.raises(InvalidProof):
            engine.cast_vote(1, voter, **vote_factory("alice"))
        assert len(store) == before
        assert engine.get_proposal(1).vote_count == 0


class TestNullifierUniqueness:

    def test_second_cast_rejected(self, engine, proposal, voter, vote_factory):
        vote = vote_factory("alice")
        engine.cast_vote(proposal.id, voter, **vote)

        with pytest.raises(NullifierAlreadyUsed):
            engine.cast_vote(proposal.id, voter, **vote)
        assert engine.get_proposal(proposal.id).vote_count == 1

    def test_nullifier_reuse_by_another_holder(self, engine, oracle, proposal, voter, vote_factory):
        vote = vote_factory("alice")
        engine.cast_vote(proposal.id, voter, **vote)
        oracle.open_account("bob", MINT, amount=THRESHOLD)

        with pytest.raises(NullifierAlreadyUsed):
            engine.cast_vote(proposal.id, "bob", **vote)

    def test_same_nullifier_on_another_proposal(self, engine, proposal, voter, vote_factory):
        engine.create_proposal("c", 2, "second", ["a", "b"], MINT, THRESHOLD, 60)
        first = vote_factory("alice")
        engine.cast_vote(proposal.id, voter, **first)

        second = vote_factory("alice", proposal_id=2)
        assert second['nullifier'] == first['nullifier']
        engine.cast_vote(2, voter, **second)

    def test_concurrent_casts_with_one_nullifier(self, engine, proposal, voter, vote_factory):
        vote = vote_factory("alice")
        barrier = threading.Barrier(8)
        outcomes = []
        lock = threading.Lock()

        def cast():
            barrier.wait()
            try:
                engine.cast_vote(proposal.id, voter, **vote)
                result = "ok"
            except NullifierAlreadyUsed:
                result = "duplicate"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=cast) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("duplicate") == 7
        assert engine.get_proposal(proposal.id).vote_count == 1

    def test_concurrent_distinct_votes_are_all_counted(self, engine, proposal, voter, vote_factory):
        votes = [vote_factory(f"voter-{i}") for i in range(20)]
        barrier = threading.Barrier(len(votes))

        def cast(vote):
            barrier.wait()
            engine.cast_vote(proposal.id, voter, **vote)

        threads = [threading.Thread(target=cast, args=(v,)) for v in votes]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert engine.get_proposal(proposal.id).vote_count == 20


class TestNoSideEffectsOnFailure:

    @pytest.mark.parametrize("mutate,error", [
        (lambda v: v.update(proof=b"\x00" * 10), InvalidProof),
        (lambda v: v.update(public_witness=b"\x00" * 12), InvalidPublicWitness),
        (lambda v: v.update(vote_commitment=b"\x00" * 32), CommitmentMismatch),
    ])
    def test_failed_cast_writes_nothing(self, engine, store, proposal, voter, vote_factory,
                                        mutate, error):
        before = len(store)
        vote = vote_factory("alice")
        mutate(vote)

        with pytest.raises(error):
            engine.cast_vote(proposal.id, voter, **vote)

        assert len(store) == before
        assert engine.get_proposal(proposal.id).vote_count == 0

    def test_nullifier_free_after_rejection(self, engine, proposal, voter, vote_factory):
        bad = vote_factory("alice", proof_size=10)
        with pytest.raises(InvalidProof):
            engine.cast_vote(proposal.id, voter, **bad)

        engine.cast_vote(proposal.id, voter, **vote_factory("alice"))
        assert engine.get_proposal(proposal.id).vote_count == 1
