"""
Zero-Knowledge Proof Module for Token-Gated Voting
Public witness codec and proof verifier collaborators
"""

from .witness import (
    # Layout constants
    NUM_PUBLIC_INPUTS,
    FIELD_ELEMENT_SIZE,
    PUBLIC_WITNESS_HEADER_SIZE,
    PUBLIC_WITNESS_SIZE,
    MIN_PROOF_SIZE,
    MAX_PROOF_SIZE,

    # Codec
    PublicWitness,
    parse_public_witness,
    build_public_witness,
    is_valid_proof_size,

    # Exceptions
    ZKError,
    WitnessFormatError,
)
from .verifier import (
    DEFAULT_VERIFIER_PROGRAM_ID,
    ProofVerifier,
    StaticProofVerifier,
    ProofServerVerifier,
    SunspotCliVerifier,
    VerifierUnavailableError,
)

__version__ = "1.0.0"

__all__ = [
    'NUM_PUBLIC_INPUTS',
    'FIELD_ELEMENT_SIZE',
    'PUBLIC_WITNESS_HEADER_SIZE',
    'PUBLIC_WITNESS_SIZE',
    'MIN_PROOF_SIZE',
    'MAX_PROOF_SIZE',

    'PublicWitness',
    'parse_public_witness',
    'build_public_witness',
    'is_valid_proof_size',

    'DEFAULT_VERIFIER_PROGRAM_ID',
    'ProofVerifier',
    'StaticProofVerifier',
    'ProofServerVerifier',
    'SunspotCliVerifier',

    'ZKError',
    'WitnessFormatError',
    'VerifierUnavailableError',
]
