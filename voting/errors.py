"""
Error taxonomy for the commit/reveal voting engine.

Every failure aborts the operation with no persisted effect. Each error
carries a stable numeric ``code`` so callers can match on it without
parsing messages.
"""

from typing import Dict, Optional, Type


class VotingError(Exception):
    """Base exception for all voting engine failures"""
    code: int = 0
    message: str = "Voting operation failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)

    @property
    def name(self) -> str:
        return type(self).__name__


# ============================================================================
# CATEGORIES
# ============================================================================


class StructuralError(VotingError):
    """Size or format violation in proof material"""
    pass


class ConsistencyError(VotingError):
    """Public witness disagrees with on-record or submitted values"""
    pass


class TemporalError(VotingError):
    """Operation attempted outside its time window"""
    pass


class StateError(VotingError):
    """Record is in a state that forbids the operation"""
    pass


class AuthorizationError(VotingError):
    """Caller is not allowed or not eligible"""
    pass


class InputDomainError(VotingError):
    """Caller-supplied value outside its allowed domain"""
    pass


class StorageError(VotingError):
    """Keyed store refused the operation"""
    pass


# ============================================================================
# CONCRETE ERRORS
# ============================================================================


class TitleTooLong(InputDomainError):
    code = 6000
    message = "Proposal title is too long"


class TooFewOptions(InputDomainError):
    code = 6001
    message = "Too few voting options (minimum 2)"


class TooManyOptions(InputDomainError):
    code = 6002
    message = "Too many voting options (maximum 10)"


class OptionTooLong(InputDomainError):
    code = 6003
    message = "Voting option text is too long"


class VotingNotStarted(TemporalError):
    code = 6004
    message = "Voting has not started yet"


class VotingEnded(TemporalError):
    code = 6005
    message = "Voting period has ended"


class VotingNotEnded(TemporalError):
    code = 6006
    message = "Voting period has not ended yet"


class ProposalFinalized(StateError):
    code = 6007
    message = "Proposal has already been finalized"


class InvalidProof(StructuralError):
    code = 6008
    message = "Invalid ZK proof - size or format incorrect"


class InvalidVoteChoice(InputDomainError):
    code = 6009
    message = "Invalid vote choice"


class AlreadyRevealed(StateError):
    code = 6010
    message = "Vote has already been revealed"


class Unauthorized(AuthorizationError):
    code = 6011
    message = "Unauthorized to perform this action"


class InvalidPublicWitness(StructuralError):
    code = 6013
    message = "Invalid public witness - size or format incorrect"


class ThresholdMismatch(ConsistencyError):
    code = 6014
    message = "Public input threshold does not match proposal threshold"


class ProposalIdMismatch(ConsistencyError):
    code = 6015
    message = "Public input proposal ID does not match"


class CommitmentMismatch(ConsistencyError):
    code = 6016
    message = "Public input commitment does not match submitted commitment"


class NullifierMismatch(ConsistencyError):
    code = 6017
    message = "Public input nullifier does not match submitted nullifier"


class InsufficientTokens(AuthorizationError):
    code = 6018
    message = "Insufficient token balance to vote"


class InvalidTokenMint(AuthorizationError):
    code = 6019
    message = "Token account mint does not match proposal token mint"


class InvalidTokenOwner(AuthorizationError):
    code = 6020
    message = "Token account owner does not match voter"


class InvalidVerifierProgram(AuthorizationError):
    code = 6021
    message = "Invalid ZK verifier program"


class ProposalAlreadyExists(StorageError):
    code = 6100
    message = "A proposal with this id already exists"


class NullifierAlreadyUsed(StorageError):
    code = 6101
    message = "A vote with this nullifier has already been cast"


class ProposalNotFound(StorageError):
    code = 6102
    message = "Proposal not found"


class VoteRecordNotFound(StorageError):
    code = 6103
    message = "Vote record not found"


ERRORS_BY_CODE: Dict[int, Type[VotingError]] = {
    cls.code: cls
    for cls in (
        TitleTooLong, TooFewOptions, TooManyOptions, OptionTooLong,
        VotingNotStarted, VotingEnded, VotingNotEnded, ProposalFinalized,
        InvalidProof, InvalidVoteChoice, AlreadyRevealed, Unauthorized,
        InvalidPublicWitness, ThresholdMismatch, ProposalIdMismatch,
        CommitmentMismatch, NullifierMismatch, InsufficientTokens,
        InvalidTokenMint, InvalidTokenOwner, InvalidVerifierProgram,
        ProposalAlreadyExists, NullifierAlreadyUsed, ProposalNotFound,
        VoteRecordNotFound,
    )
}
