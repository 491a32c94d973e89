"""
Records kept by the voting engine: proposals, per-proposal results and one
vote record per accepted nullifier.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

MAX_TITLE_LENGTH = 100
MAX_OPTION_LENGTH = 50
MIN_OPTIONS = 2
MAX_OPTIONS = 10
NULLIFIER_SIZE = 32
COMMITMENT_SIZE = 32


class ProposalStatus(Enum):
    """Lifecycle states of a proposal at a given instant"""
    CREATED = "created"
    OPEN = "open"
    CLOSED = "closed"
    FINALIZED = "finalized"


@dataclass
class Proposal:
    """Identity and governance envelope for one vote"""
    id: int
    creator: str
    title: str
    options: List[str]
    token_mint: str
    min_threshold: int
    start_time: int
    end_time: int
    address: str
    vote_count: int = 0
    is_finalized: bool = False

    def status_at(self, now: int) -> ProposalStatus:
        if self.is_finalized:
            return ProposalStatus.FINALIZED
        if now < self.start_time:
            return ProposalStatus.CREATED
        if now <= self.end_time:
            return ProposalStatus.OPEN
        return ProposalStatus.CLOSED

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Proposal':
        return cls(**{**data, 'options': list(data['options'])})


@dataclass
class ProposalResults:
    """Aggregate tallies, one counter per option"""
    proposal: str
    tallies: List[int] = field(default_factory=list)
    is_finalized: bool = False

    @property
    def total_revealed(self) -> int:
        return sum(self.tallies)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProposalResults':
        return cls(proposal=data['proposal'],
                   tallies=[int(t) for t in data['tallies']],
                   is_finalized=bool(data['is_finalized']))


@dataclass
class VoteRecord:
    """One accepted vote, addressed by (proposal, nullifier)"""
    proposal: str
    nullifier: bytes
    vote_commitment: bytes
    timestamp: int
    is_revealed: bool = False
    revealed_choice: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['nullifier'] = self.nullifier.hex()
        data['vote_commitment'] = self.vote_commitment.hex()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VoteRecord':
        return cls(
            proposal=data['proposal'],
            nullifier=bytes.fromhex(data['nullifier']),
            vote_commitment=bytes.fromhex(data['vote_commitment']),
            timestamp=int(data['timestamp']),
            is_revealed=bool(data['is_revealed']),
            revealed_choice=data.get('revealed_choice'),
        )


@dataclass
class TokenAccount:
    """Snapshot of a holder's balance of one asset"""
    address: str
    owner: str
    mint: str
    amount: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TokenAccount':
        return cls(**data)


RECORD_TYPES = {
    'Proposal': Proposal,
    'ProposalResults': ProposalResults,
    'VoteRecord': VoteRecord,
    'TokenAccount': TokenAccount,
}
