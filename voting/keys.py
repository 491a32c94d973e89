"""
Deterministic record addressing.

Every record lives at an address that is a pure function of
``(program_id, namespace, seeds)``. Because the keyed store only lets a
given address be created once, deriving the vote record address from the
nullifier is what makes a second vote with the same nullifier impossible.
"""

import hashlib
import struct

PROPOSAL_SEED = b"proposal"
RESULTS_SEED = b"results"
VOTE_SEED = b"vote"

DEFAULT_PROGRAM_ID = "token-gated-voting"
TOKEN_PROGRAM_ID = "spl-token"
ASSOCIATED_TOKEN_PROGRAM_ID = "associated-token-account"

U64_MAX = 2**64 - 1


def u64_le(value: int) -> bytes:
    """Encode an unsigned 64-bit integer as little-endian bytes"""
    if not 0 <= value <= U64_MAX:
        raise ValueError(f"Value {value} does not fit in u64")
    return struct.pack("<Q", value)


def derive_address(program_id: str, *seeds: bytes) -> str:
    """Hash the seeds under a program namespace into a hex address"""
    digest = hashlib.sha256()
    for seed in seeds:
        # Length prefix keeps ("ab", "c") and ("a", "bc") apart
        digest.update(struct.pack(">I", len(seed)))
        digest.update(seed)
    digest.update(program_id.encode("utf-8"))
    digest.update(b"DerivedAddress")
    return digest.hexdigest()


def proposal_address(program_id: str, proposal_id: int) -> str:
    return derive_address(program_id, PROPOSAL_SEED, u64_le(proposal_id))


def results_address(program_id: str, proposal_id: int) -> str:
    return derive_address(program_id, RESULTS_SEED, u64_le(proposal_id))


def vote_record_address(program_id: str, proposal_addr: str, nullifier: bytes) -> str:
    return derive_address(
        program_id, VOTE_SEED, proposal_addr.encode("utf-8"), bytes(nullifier))


def associated_token_address(owner: str, mint: str) -> str:
    """Address of the canonical token account of ``owner`` for ``mint``"""
    return derive_address(
        ASSOCIATED_TOKEN_PROGRAM_ID,
        owner.encode("utf-8"),
        TOKEN_PROGRAM_ID.encode("utf-8"),
        mint.encode("utf-8"),
    )
