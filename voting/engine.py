"""
Commit/Reveal Voting Engine
===========================

Proposal lifecycle, vote casting with public-witness binding, reveal and
tally, and finalization. Every operation reads the clock once, runs all of
its checks, and only then commits its writes as a single keyed-store
transaction, so a failed operation never leaves partial state behind.

Proposal state machine::

    Created --(now >= start)--> Open --(now > end)--> Closed --finalize--> Finalized

Votes are cast only while Open; reveals and finalization only once Closed.
"""

import logging
import time
from typing import Callable, Dict, Any, List, Optional, Sequence, Tuple

from zk.verifier import DEFAULT_VERIFIER_PROGRAM_ID, ProofVerifier
from zk.witness import (
    MAX_PROOF_SIZE,
    MIN_PROOF_SIZE,
    PublicWitness,
    WitnessFormatError,
    ZKError,
    is_valid_proof_size,
    parse_public_witness,
)
from utils.utils import PerformanceMonitor

from .balances import BalanceOracle
from .errors import (
    AlreadyRevealed,
    CommitmentMismatch,
    InsufficientTokens,
    InvalidProof,
    InvalidPublicWitness,
    InvalidTokenMint,
    InvalidTokenOwner,
    InvalidVerifierProgram,
    InvalidVoteChoice,
    NullifierAlreadyUsed,
    NullifierMismatch,
    OptionTooLong,
    ProposalAlreadyExists,
    ProposalFinalized,
    ProposalIdMismatch,
    ProposalNotFound,
    ThresholdMismatch,
    TitleTooLong,
    TooFewOptions,
    TooManyOptions,
    Unauthorized,
    VoteRecordNotFound,
    VotingEnded,
    VotingError,
    VotingNotEnded,
    VotingNotStarted,
)
from .keys import (
    DEFAULT_PROGRAM_ID,
    U64_MAX,
    associated_token_address,
    proposal_address,
    results_address,
    vote_record_address,
)
from .models import (
    COMMITMENT_SIZE,
    MAX_OPTION_LENGTH,
    MAX_OPTIONS,
    MAX_TITLE_LENGTH,
    MIN_OPTIONS,
    NULLIFIER_SIZE,
    Proposal,
    ProposalResults,
    ProposalStatus,
    VoteRecord,
)
from .storage import InMemoryKeyedStore, KeyExistsError

logger = logging.getLogger(__name__)


def _text_length(value: str) -> int:
    # Length limits are on the UTF-8 encoding
    return len(value.encode('utf-8'))


def validate_proposal_fields(title: str, options: Sequence[str]):
    """Structural checks for a new proposal, in a fixed order"""
    if _text_length(title) > MAX_TITLE_LENGTH:
        raise TitleTooLong(
            f"Title is {_text_length(title)} bytes, maximum is {MAX_TITLE_LENGTH}")
    if len(options) < MIN_OPTIONS:
        raise TooFewOptions(
            f"Got {len(options)} options, minimum is {MIN_OPTIONS}")
    if len(options) > MAX_OPTIONS:
        raise TooManyOptions(
            f"Got {len(options)} options, maximum is {MAX_OPTIONS}")
    for index, option in enumerate(options):
        if _text_length(option) > MAX_OPTION_LENGTH:
            raise OptionTooLong(
                f"Option {index} is {_text_length(option)} bytes, maximum is {MAX_OPTION_LENGTH}")


def _require_u64(name: str, value: int):
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= U64_MAX:
        raise ValueError(f"{name} must be an unsigned 64-bit integer, got {value!r}")


def _require_bytes32(name: str, value: bytes, size: int = 32) -> bytes:
    if not isinstance(value, (bytes, bytearray)) or len(value) != size:
        raise ValueError(f"{name} must be exactly {size} bytes")
    return bytes(value)


class VotingEngine:
    """
    Token-gated commit/reveal voting over a keyed store.

    Collaborators are injected: the keyed store (exclusive create,
    transactional commit), the balance oracle, the proof verifier and the
    clock. The engine itself holds no proposal state.
    """

    def __init__(
        self,
        store: InMemoryKeyedStore,
        balance_oracle: BalanceOracle,
        verifier: ProofVerifier,
        clock: Optional[Callable[[], float]] = None,
        program_id: str = DEFAULT_PROGRAM_ID,
        verifier_program_id: str = DEFAULT_VERIFIER_PROGRAM_ID,
        monitor: Optional[PerformanceMonitor] = None,
    ):
        self.store = store
        self.balance_oracle = balance_oracle
        self.verifier = verifier
        self.clock = clock or time.time
        self.program_id = program_id
        self.verifier_program_id = verifier_program_id
        self.monitor = monitor or PerformanceMonitor(enabled=False)

    def _now(self) -> int:
        return int(self.clock())

    def _run(self, operation: str, func: Callable, *args, **kwargs):
        """Run one operation under the monitor, logging rejections"""
        with self.monitor.start_operation(operation):
            try:
                return func(*args, **kwargs)
            except VotingError as e:
                logger.warning(f"{operation} rejected: {e.name} ({e})")
                raise

    def _load_proposal(self, proposal_id: int) -> Tuple[str, Proposal]:
        _require_u64('proposal_id', proposal_id)
        address = proposal_address(self.program_id, proposal_id)
        proposal = self.store.get(address)
        if proposal is None:
            raise ProposalNotFound(f"Proposal {proposal_id} not found")
        return address, proposal

    # ========================================================================
    # PROPOSAL LIFECYCLE
    # ========================================================================

    def create_proposal(self, creator: str, proposal_id: int, title: str,
                        options: Sequence[str], token_mint: str,
                        min_threshold: int, voting_period_seconds: int) -> Proposal:
        """
        Create a proposal and its empty results at addresses derived from
        ``proposal_id``. The voting window starts now and lasts
        ``voting_period_seconds``; a zero or negative period is accepted, which
        leaves a window that is a single instant or already closed.
        """
        return self._run('create_proposal', self._create_proposal, creator,
                         proposal_id, title, list(options), token_mint,
                         min_threshold, voting_period_seconds)

    def _create_proposal(self, creator, proposal_id, title, options,
                         token_mint, min_threshold, voting_period_seconds):
        _require_u64('proposal_id', proposal_id)
        _require_u64('min_threshold', min_threshold)
        validate_proposal_fields(title, options)

        now = self._now()
        if voting_period_seconds <= 0:
            logger.warning(
                f"Proposal {proposal_id} created with non-positive voting period "
                f"({voting_period_seconds}s)")

        address = proposal_address(self.program_id, proposal_id)
        proposal = Proposal(
            id=proposal_id,
            creator=creator,
            title=title,
            options=options,
            token_mint=token_mint,
            min_threshold=min_threshold,
            start_time=now,
            end_time=now + voting_period_seconds,
            address=address,
        )
        results = ProposalResults(proposal=address, tallies=[0] * len(options))

        try:
            with self.store.transaction() as txn:
                txn.create(address, proposal)
                txn.create(results_address(self.program_id, proposal_id), results)
        except KeyExistsError as e:
            raise ProposalAlreadyExists(
                f"Proposal {proposal_id} already exists") from e

        logger.info(
            f"Proposal '{title}' created with {len(options)} options "
            f"(id={proposal_id}, window {proposal.start_time}..{proposal.end_time})")
        return proposal

    def get_proposal(self, proposal_id: int) -> Proposal:
        return self._load_proposal(proposal_id)[1]

    def get_results(self, proposal_id: int) -> ProposalResults:
        self._load_proposal(proposal_id)
        return self.store.get(results_address(self.program_id, proposal_id))

    def get_vote_record(self, proposal_id: int, nullifier: bytes) -> VoteRecord:
        address, _ = self._load_proposal(proposal_id)
        nullifier = _require_bytes32('nullifier', nullifier, NULLIFIER_SIZE)
        record = self.store.get(
            vote_record_address(self.program_id, address, nullifier))
        if record is None:
            raise VoteRecordNotFound(
                f"No vote with nullifier {nullifier.hex()[:16]}... on proposal {proposal_id}")
        return record

    def list_proposals(self) -> List[Proposal]:
        """All proposals, newest first"""
        proposals = self.store.records_of_type(Proposal)
        proposals.sort(key=lambda p: (p.start_time, p.id), reverse=True)
        return proposals

    def proposal_status(self, proposal_id: int) -> ProposalStatus:
        return self.get_proposal(proposal_id).status_at(self._now())

    def verify_tally_integrity(self, proposal_id: int) -> Dict[str, Any]:
        """Recount revealed vote records and compare with the stored tallies"""
        address, proposal = self._load_proposal(proposal_id)
        results = self.get_results(proposal_id)
        records = [r for r in self.store.records_of_type(VoteRecord)
                   if r.proposal == address]

        recount = [0] * len(proposal.options)
        for record in records:
            if record.is_revealed:
                recount[record.revealed_choice] += 1

        return {
            'proposal_id': proposal_id,
            'vote_records': len(records),
            'vote_count_matches': proposal.vote_count == len(records),
            'revealed': sum(recount),
            'tallies': results.tallies,
            'tally_matches': recount == results.tallies,
        }

    # ========================================================================
    # VOTE CASTING
    # ========================================================================

    def cast_vote(self, proposal_id: int, voter: str, nullifier: bytes,
                  vote_commitment: bytes, proof: bytes, public_witness: bytes,
                  token_account: Optional[str] = None) -> VoteRecord:
        """
        Validate and record one hidden vote.

        Checks run in order: voting window, token eligibility, proof size,
        witness size and header, witness-to-submission binding, and finally
        cryptographic verification. Only then is the vote record created at
        the address derived from ``(proposal, nullifier)``; if that address
        is taken the vote is rejected with NullifierAlreadyUsed.

        ``token_account`` defaults to the voter's associated account for the
        proposal's token mint.
        """
        return self._run('cast_vote', self._cast_vote, proposal_id, voter,
                         nullifier, vote_commitment, proof, public_witness,
                         token_account)

    def _cast_vote(self, proposal_id, voter, nullifier, vote_commitment,
                   proof, public_witness, token_account):
        nullifier = _require_bytes32('nullifier', nullifier, NULLIFIER_SIZE)
        vote_commitment = _require_bytes32(
            'vote_commitment', vote_commitment, COMMITMENT_SIZE)
        proof = bytes(proof)
        public_witness = bytes(public_witness)

        now = self._now()
        address, proposal = self._load_proposal(proposal_id)

        if now < proposal.start_time:
            raise VotingNotStarted()
        if now > proposal.end_time:
            raise VotingEnded()
        if proposal.is_finalized:
            raise ProposalFinalized()

        self._check_eligibility(proposal, voter, token_account)

        if not is_valid_proof_size(proof):
            raise InvalidProof(
                f"Proof is {len(proof)} bytes, expected {MIN_PROOF_SIZE}-{MAX_PROOF_SIZE}")

        try:
            witness = parse_public_witness(public_witness)
        except WitnessFormatError as e:
            raise InvalidPublicWitness(str(e)) from e

        self._check_witness_binding(proposal, witness, nullifier, vote_commitment)

        logger.debug(
            f"Proof validated: {len(proof)} bytes proof, {len(public_witness)} bytes witness, "
            f"threshold={proposal.min_threshold}, proposal_id={proposal.id}")

        self._verify_proof(proof, public_witness)

        record = VoteRecord(
            proposal=address,
            nullifier=nullifier,
            vote_commitment=vote_commitment,
            timestamp=now,
        )

        def count_vote(stored: Proposal):
            if stored.is_finalized:
                raise ProposalFinalized()
            stored.vote_count += 1

        try:
            with self.store.transaction() as txn:
                txn.create(vote_record_address(self.program_id, address, nullifier), record)
                txn.update(address, count_vote)
        except KeyExistsError as e:
            raise NullifierAlreadyUsed(
                f"Nullifier {nullifier.hex()[:16]}... already voted on proposal {proposal_id}") from e

        logger.info(f"Vote cast for proposal {proposal_id}")
        return record

    def _check_eligibility(self, proposal: Proposal, voter: str,
                           token_account: Optional[str]):
        account_address = token_account or associated_token_address(
            voter, proposal.token_mint)
        account = self.balance_oracle.get_token_account(account_address)

        if account is None:
            raise InsufficientTokens(
                f"Voter holds no {proposal.token_mint} token account")
        if account.mint != proposal.token_mint:
            raise InvalidTokenMint()
        if account.owner != voter:
            raise InvalidTokenOwner()
        if account.amount < proposal.min_threshold:
            raise InsufficientTokens(
                f"Balance {account.amount} is below threshold {proposal.min_threshold}")

        logger.debug(
            f"Token balance verified: {account.amount} >= {proposal.min_threshold} threshold")

    @staticmethod
    def _check_witness_binding(proposal: Proposal, witness: PublicWitness,
                               nullifier: bytes, vote_commitment: bytes):
        """The proof speaks about the witness; tie the witness to this vote"""
        if witness.min_threshold != proposal.min_threshold:
            raise ThresholdMismatch()
        if witness.proposal_id != proposal.id:
            raise ProposalIdMismatch()
        if witness.vote_commitment != vote_commitment:
            raise CommitmentMismatch()
        if witness.nullifier != nullifier:
            raise NullifierMismatch()

    def _verify_proof(self, proof: bytes, public_witness: bytes):
        if self.verifier.program_id != self.verifier_program_id:
            raise InvalidVerifierProgram(
                f"Verifier {self.verifier.program_id!r} is not {self.verifier_program_id!r}")

        try:
            is_valid = self.verifier.verify(proof, public_witness)
        except ZKError as e:
            logger.error(f"Proof verifier failed: {e}")
            raise InvalidProof("Proof could not be verified") from e

        if not is_valid:
            raise InvalidProof("Proof rejected by verifier")

    # ========================================================================
    # REVEAL AND TALLY
    # ========================================================================

    def reveal_vote(self, proposal_id: int, nullifier: bytes,
                    vote_choice: int) -> VoteRecord:
        """
        Reveal the choice behind a cast vote and add it to the tally.

        The record is addressed by its nullifier, which only the voter who
        produced the proof knows. The commitment is not recomputed here; the
        cast-time proof already bound it to the choice.
        """
        return self._run('reveal_vote', self._reveal_vote, proposal_id,
                         nullifier, vote_choice)

    def _reveal_vote(self, proposal_id, nullifier, vote_choice):
        nullifier = _require_bytes32('nullifier', nullifier, NULLIFIER_SIZE)

        now = self._now()
        address, proposal = self._load_proposal(proposal_id)

        if now <= proposal.end_time:
            raise VotingNotEnded()
        if proposal.is_finalized:
            raise ProposalFinalized()
        valid_choice = (isinstance(vote_choice, int) and not isinstance(vote_choice, bool)
                        and 0 <= vote_choice < len(proposal.options))
        if not valid_choice:
            raise InvalidVoteChoice(
                f"Choice {vote_choice!r} is outside 0..{len(proposal.options) - 1}")

        record_addr = vote_record_address(self.program_id, address, nullifier)
        record = self.store.get(record_addr)
        if record is None:
            raise VoteRecordNotFound(
                f"No vote with nullifier {nullifier.hex()[:16]}... on proposal {proposal_id}")
        if record.is_revealed:
            raise AlreadyRevealed()

        def mark_revealed(stored: VoteRecord):
            if stored.is_revealed:
                raise AlreadyRevealed()
            stored.is_revealed = True
            stored.revealed_choice = vote_choice

        def add_to_tally(stored: ProposalResults):
            if stored.is_finalized:
                raise ProposalFinalized()
            stored.tallies[vote_choice] += 1

        with self.store.transaction() as txn:
            txn.update(record_addr, mark_revealed)
            txn.update(results_address(self.program_id, proposal_id), add_to_tally)

        logger.info(f"Vote revealed for option {vote_choice} on proposal {proposal_id}")
        return self.store.get(record_addr)

    # ========================================================================
    # FINALIZATION
    # ========================================================================

    def finalize_proposal(self, proposal_id: int, authority: str) -> ProposalResults:
        """Seal the proposal and its results; only the creator may do this"""
        return self._run('finalize_proposal', self._finalize_proposal,
                         proposal_id, authority)

    def _finalize_proposal(self, proposal_id, authority):
        now = self._now()
        address, proposal = self._load_proposal(proposal_id)

        if authority != proposal.creator:
            raise Unauthorized()
        if now <= proposal.end_time:
            raise VotingNotEnded()
        if proposal.is_finalized:
            raise ProposalFinalized()

        def seal_proposal(stored: Proposal):
            if stored.is_finalized:
                raise ProposalFinalized()
            stored.is_finalized = True

        def seal_results(stored: ProposalResults):
            stored.is_finalized = True

        with self.store.transaction() as txn:
            txn.update(address, seal_proposal)
            txn.update(results_address(self.program_id, proposal_id), seal_results)

        logger.info(
            f"Proposal {proposal_id} finalized with {proposal.vote_count} total votes")
        return self.get_results(proposal_id)
