"""Token-gated commit/reveal voting engine."""

from .engine import (
    # Main API
    VotingEngine,
    validate_proposal_fields,
)
from .models import (
    # Records
    Proposal,
    ProposalResults,
    ProposalStatus,
    VoteRecord,
    TokenAccount,

    # Limits
    MAX_TITLE_LENGTH,
    MAX_OPTION_LENGTH,
    MIN_OPTIONS,
    MAX_OPTIONS,
)
from .storage import (
    InMemoryKeyedStore,
    FileKeyedStore,
    StoreError,
    KeyExistsError,
    KeyNotFoundError,
)
from .balances import BalanceOracle, InMemoryBalanceOracle
from .keys import (
    DEFAULT_PROGRAM_ID,
    proposal_address,
    results_address,
    vote_record_address,
    associated_token_address,
)
from .errors import (
    VotingError,
    ERRORS_BY_CODE,
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
    VotingNotEnded,
    VotingNotStarted,
)

__version__ = "1.0.0"

__all__ = [
    'VotingEngine',
    'validate_proposal_fields',

    'Proposal',
    'ProposalResults',
    'ProposalStatus',
    'VoteRecord',
    'TokenAccount',
    'MAX_TITLE_LENGTH',
    'MAX_OPTION_LENGTH',
    'MIN_OPTIONS',
    'MAX_OPTIONS',

    'InMemoryKeyedStore',
    'FileKeyedStore',
    'StoreError',
    'KeyExistsError',
    'KeyNotFoundError',
    'BalanceOracle',
    'InMemoryBalanceOracle',

    'DEFAULT_PROGRAM_ID',
    'proposal_address',
    'results_address',
    'vote_record_address',
    'associated_token_address',

    'VotingError',
    'ERRORS_BY_CODE',
    'AlreadyRevealed',
    'CommitmentMismatch',
    'InsufficientTokens',
    'InvalidProof',
    'InvalidPublicWitness',
    'InvalidTokenMint',
    'InvalidTokenOwner',
    'InvalidVerifierProgram',
    'InvalidVoteChoice',
    'NullifierAlreadyUsed',
    'NullifierMismatch',
    'OptionTooLong',
    'ProposalAlreadyExists',
    'ProposalFinalized',
    'ProposalIdMismatch',
    'ProposalNotFound',
    'ThresholdMismatch',
    'TitleTooLong',
    'TooFewOptions',
    'TooManyOptions',
    'Unauthorized',
    'VoteRecordNotFound',
    'VotingEnded',
    'VotingNotEnded',
    'VotingNotStarted',
]
