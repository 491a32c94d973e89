#!/usr/bin/env python3
"""
Token-Gated Private Voting System
=================================
Wires configuration, keyed store, balance oracle, proof verifier and
performance monitor into a VotingEngine, and adds metrics and result export
on top of it.

Lifecycle: create proposal → cast hidden votes (commitment + nullifier +
Groth16 proof) → voting window closes → voters reveal → creator finalizes.
"""

import argparse
import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from config.config import StoreConfig, SystemConfig, VerifierConfig, load_config
from utils.utils import (
    PerformanceMonitor,
    create_performance_report,
    save_results,
    setup_logging,
)
from voting.balances import BalanceOracle, InMemoryBalanceOracle
from voting.engine import VotingEngine
from voting.models import Proposal, ProposalResults, ProposalStatus, VoteRecord
from voting.storage import FileKeyedStore, InMemoryKeyedStore
from zk.verifier import (
    ProofServerVerifier,
    ProofVerifier,
    StaticProofVerifier,
    SunspotCliVerifier,
)
from zk.witness import GNARK_PROOF_SIZE, build_public_witness

logger = logging.getLogger(__name__)

# ============================================================================
# COLLABORATOR FACTORIES
# ============================================================================


def build_verifier(config: VerifierConfig) -> ProofVerifier:
    """Instantiate the proof verifier named by the config backend"""
    if config.backend == "accept_all":
        logger.warning("Proof verification disabled: every proof is accepted")
        return StaticProofVerifier(accept=True, program_id=config.program_id)
    if config.backend == "reject_all":
        return StaticProofVerifier(accept=False, program_id=config.program_id)
    if config.backend == "proof_server":
        return ProofServerVerifier(
            config.proof_server_url,
            timeout=config.timeout,
            program_id=config.program_id,
        )
    if config.backend == "sunspot":
        return SunspotCliVerifier(
            config.verifying_key,
            sunspot_path=config.sunspot_path,
            timeout=config.timeout,
            program_id=config.program_id,
        )
    raise ValueError(f"Unknown verifier backend: {config.backend}")


def build_store(config: StoreConfig) -> InMemoryKeyedStore:
    if config.backend == "file":
        logger.info(f"Using file-backed store at {config.path}")
        return FileKeyedStore(config.path)
    return InMemoryKeyedStore()


# ============================================================================
# CLIENT-SIDE VOTE PREPARATION (DRY RUN)
# ============================================================================


@dataclass
class VoteSubmission:
    """Everything a voter sends to cast_vote, plus what they keep for reveal"""
    proposal_id: int
    choice: int
    nullifier: bytes
    vote_commitment: bytes
    proof: bytes
    public_witness: bytes


def derive_nullifier(secret: bytes, proposal_id: int) -> bytes:
    return hashlib.sha256(secret + proposal_id.to_bytes(8, 'little')).digest()


def commit_vote(choice: int, salt: bytes) -> bytes:
    return hashlib.sha256(choice.to_bytes(8, 'little') + salt).digest()


def prepare_dry_run_vote(proposal: Proposal, choice: int,
                         secret: Optional[bytes] = None) -> VoteSubmission:
    """
    Build a submission with a well-formed public witness and a placeholder
    proof. Only an accept-all verifier will take it; real proofs come from
    the vote circuit prover.
    """
    secret = secret or os.urandom(32)
    nullifier = derive_nullifier(secret, proposal.id)
    vote_commitment = commit_vote(choice, os.urandom(32))
    return VoteSubmission(
        proposal_id=proposal.id,
        choice=choice,
        nullifier=nullifier,
        vote_commitment=vote_commitment,
        proof=os.urandom(GNARK_PROOF_SIZE),
        public_witness=build_public_witness(
            proposal.min_threshold, proposal.id, vote_commitment, nullifier),
    )


# ============================================================================
# INTEGRATED VOTING SYSTEM
# ============================================================================


class TokenGatedVotingSystem:
    """
    Complete token-gated voting system built from a SystemConfig.

    Any collaborator may be passed in explicitly; the rest are built from
    the config.
    """

    def __init__(
        self,
        config: Optional[SystemConfig] = None,
        store: Optional[InMemoryKeyedStore] = None,
        balance_oracle: Optional[BalanceOracle] = None,
        verifier: Optional[ProofVerifier] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config or SystemConfig()

        logger.info("Initializing Token-Gated Voting System...")
        self.monitor = PerformanceMonitor(enabled=self.config.enable_benchmarking)
        self.store = store if store is not None else build_store(self.config.store_config)
        self.balance_oracle = balance_oracle or InMemoryBalanceOracle()
        self.verifier = verifier or build_verifier(self.config.verifier_config)

        self.engine = VotingEngine(
            self.store,
            self.balance_oracle,
            self.verifier,
            clock=clock,
            program_id=self.config.program_id,
            verifier_program_id=self.config.verifier_config.program_id,
            monitor=self.monitor,
        )
        logger.info(
            f"Voting system ready (program={self.config.program_id}, "
            f"verifier={self.config.verifier_config.backend}, "
            f"store={self.config.store_config.backend})")

    # Engine operations

    def create_proposal(self, creator: str, proposal_id: int, title: str,
                        options: Sequence[str], token_mint: str,
                        min_threshold: int, voting_period_seconds: int) -> Proposal:
        return self.engine.create_proposal(
            creator, proposal_id, title, options, token_mint,
            min_threshold, voting_period_seconds)

    def cast_vote(self, proposal_id: int, voter: str, nullifier: bytes,
                  vote_commitment: bytes, proof: bytes, public_witness: bytes,
                  token_account: Optional[str] = None) -> VoteRecord:
        return self.engine.cast_vote(
            proposal_id, voter, nullifier, vote_commitment, proof,
            public_witness, token_account)

    def submit_vote(self, voter: str, submission: VoteSubmission) -> VoteRecord:
        return self.cast_vote(
            submission.proposal_id, voter, submission.nullifier,
            submission.vote_commitment, submission.proof,
            submission.public_witness)

    def reveal_vote(self, proposal_id: int, nullifier: bytes,
                    vote_choice: int) -> VoteRecord:
        return self.engine.reveal_vote(proposal_id, nullifier, vote_choice)

    def finalize_proposal(self, proposal_id: int, authority: str) -> ProposalResults:
        return self.engine.finalize_proposal(proposal_id, authority)

    def get_proposal(self, proposal_id: int) -> Proposal:
        return self.engine.get_proposal(proposal_id)

    def get_results(self, proposal_id: int) -> ProposalResults:
        return self.engine.get_results(proposal_id)

    def list_proposals(self) -> List[Proposal]:
        return self.engine.list_proposals()

    def proposal_status(self, proposal_id: int) -> ProposalStatus:
        return self.engine.proposal_status(proposal_id)

    # Reporting

    def export_results(self, proposal_id: int,
                       filepath: Optional[Path] = None) -> Path:
        """Write proposal, tallies and integrity check to JSON; returns the JSON path"""
        if filepath is None:
            filepath = self.config.results_dir / f"proposal_{proposal_id}_results.json"

        proposal = self.get_proposal(proposal_id)
        export = {
            'proposal': proposal,
            'results': self.get_results(proposal_id),
            'status': self.proposal_status(proposal_id).value,
            'integrity': self.engine.verify_tally_integrity(proposal_id),
        }
        save_results(export, filepath)
        return Path(filepath)

    def get_system_metrics(self) -> Dict[str, Any]:
        """Get comprehensive system metrics"""
        proposals = self.list_proposals()
        return {
            'program_id': self.config.program_id,
            'verifier_backend': self.config.verifier_config.backend,
            'store_backend': self.config.store_config.backend,
            'stored_records': len(self.store),
            'proposals': len(proposals),
            'finalized_proposals': sum(1 for p in proposals if p.is_finalized),
            'votes_cast': sum(p.vote_count for p in proposals),
            'performance': self.monitor.get_summary(),
        }

    def performance_report(self) -> str:
        return create_performance_report(self.monitor)


# ============================================================================
# DEMONSTRATION
# ============================================================================


def demonstrate_voting_system(config: Optional[SystemConfig] = None) -> Dict[str, Any]:
    """Run a full proposal lifecycle against an accept-all verifier"""
    config = config or SystemConfig()

    print("\n" + "=" * 80)
    print("TOKEN-GATED PRIVATE VOTING DEMONSTRATION")
    print("=" * 80 + "\n")

    # Simulated clock so the demo can step past the voting window
    now = [1_700_000_000]
    oracle = InMemoryBalanceOracle()
    system = TokenGatedVotingSystem(
        config,
        balance_oracle=oracle,
        verifier=StaticProofVerifier(
            accept=True, program_id=config.verifier_config.program_id),
        clock=lambda: now[0],
    )

    mint = "GOV-TOKEN"
    creator = "dao_admin"
    proposal = system.create_proposal(
        creator, 1, "Fund the community grants program",
        ["Yes", "No", "Abstain"], mint, min_threshold=100,
        voting_period_seconds=3600)
    print(f"Proposal {proposal.id}: {proposal.title}")
    print(f"  Options: {', '.join(proposal.options)}\n")

    choices = [0, 1, 0, 2, 0]
    submissions = []
    print("Casting votes...")
    for i, choice in enumerate(choices):
        voter = f"voter_{i:03d}"
        oracle.open_account(voter, mint, amount=100 + i * 50)
        submission = prepare_dry_run_vote(proposal, choice)
        system.submit_vote(voter, submission)
        submissions.append(submission)
        print(f"  {voter}: vote cast (nullifier: {submission.nullifier.hex()[:16]}...)")

    now[0] = proposal.end_time + 1
    print("\nRevealing votes...")
    for submission in submissions:
        system.reveal_vote(proposal.id, submission.nullifier, submission.choice)

    results = system.finalize_proposal(proposal.id, creator)

    print("\n" + "=" * 80)
    print("RESULTS")
    print("=" * 80)
    for option, count in zip(proposal.options, results.tallies):
        print(f"  {option}: {count} votes")
    print(f"\nTotal Revealed: {results.total_revealed}")
    print(f"Status: {system.proposal_status(proposal.id).value}")

    print("\n" + system.performance_report())

    return {
        'proposal': system.get_proposal(proposal.id),
        'results': results,
        'metrics': system.get_system_metrics(),
    }


def main():
    parser = argparse.ArgumentParser(
        description='Token-Gated Private Voting System')
    parser.add_argument('--config', type=str,
                        default='config.yaml', help='Config file path')
    parser.add_argument('--export', action='store_true',
                        help='Write the demo proposal results to results_dir')

    args = parser.parse_args()

    system_config = load_config(Path(args.config))
    setup_logging(system_config.log_level, log_dir=system_config.log_dir)

    outcome = demonstrate_voting_system(system_config)
    if args.export:
        save_results(outcome, system_config.results_dir / "demo_results.json")


if __name__ == "__main__":
    main()
