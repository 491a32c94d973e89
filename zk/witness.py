"""
Public witness codec for the vote circuit.

Wire layout (big-endian)::

    [0:4)     number of public inputs, must be 4
    [4:12)    reserved header words
    [12:44)   min_threshold   (u64 in the low 8 bytes)
    [44:76)   proposal_id     (u64 in the low 8 bytes)
    [76:108)  vote_commitment (32 bytes)
    [108:140) nullifier       (32 bytes)

The proof only certifies facts about these values, so the caller must bind
them to the proposal and to the nullifier/commitment it submitted.
"""

import struct
from dataclasses import dataclass

NUM_PUBLIC_INPUTS = 4
FIELD_ELEMENT_SIZE = 32
PUBLIC_WITNESS_HEADER_SIZE = 12
PUBLIC_WITNESS_SIZE = PUBLIC_WITNESS_HEADER_SIZE + NUM_PUBLIC_INPUTS * FIELD_ELEMENT_SIZE

# Groth16 proofs from the vote circuit are 388 bytes; allow 64 bytes of slack
GNARK_PROOF_SIZE = 388
MIN_PROOF_SIZE = 256
MAX_PROOF_SIZE = GNARK_PROOF_SIZE + 64

SCALAR_SIZE = 8
U64_MAX = 2**64 - 1


class ZKError(Exception):
    """Base exception for ZK operations"""
    pass


class WitnessFormatError(ZKError):
    """Public witness is too short or its header is wrong"""
    pass


@dataclass(frozen=True)
class PublicWitness:
    """Decoded public inputs, in circuit order"""
    min_threshold: int
    proposal_id: int
    vote_commitment: bytes
    nullifier: bytes
    input_count: int = NUM_PUBLIC_INPUTS


def is_valid_proof_size(proof: bytes) -> bool:
    return MIN_PROOF_SIZE <= len(proof) <= MAX_PROOF_SIZE


def _element(witness: bytes, index: int) -> bytes:
    start = PUBLIC_WITNESS_HEADER_SIZE + index * FIELD_ELEMENT_SIZE
    return bytes(witness[start:start + FIELD_ELEMENT_SIZE])


def _scalar(element: bytes) -> int:
    # Only the low-order 8 bytes carry the u64; the high 24 are ignored
    return int.from_bytes(element[-SCALAR_SIZE:], 'big')


def parse_public_witness(witness: bytes) -> PublicWitness:
    """Validate size and header, then split out the four public inputs"""
    if len(witness) < PUBLIC_WITNESS_SIZE:
        raise WitnessFormatError(
            f"Public witness is {len(witness)} bytes, need at least {PUBLIC_WITNESS_SIZE}")

    input_count = None
    if len(witness) >= 8:
        (input_count,) = struct.unpack('>I', bytes(witness[0:4]))
        if input_count != NUM_PUBLIC_INPUTS:
            raise WitnessFormatError(
                f"Public witness declares {input_count} inputs, expected {NUM_PUBLIC_INPUTS}")

    return PublicWitness(
        min_threshold=_scalar(_element(witness, 0)),
        proposal_id=_scalar(_element(witness, 1)),
        vote_commitment=_element(witness, 2),
        nullifier=_element(witness, 3),
        input_count=input_count,
    )


def build_public_witness(min_threshold: int, proposal_id: int,
                         vote_commitment: bytes, nullifier: bytes) -> bytes:
    """Encode the four public inputs the way the prover emits them"""
    for name, value in (('min_threshold', min_threshold), ('proposal_id', proposal_id)):
        if not 0 <= value <= U64_MAX:
            raise ValueError(f"{name} {value} does not fit in u64")
    for name, value in (('vote_commitment', vote_commitment), ('nullifier', nullifier)):
        if len(value) != FIELD_ELEMENT_SIZE:
            raise ValueError(f"{name} must be {FIELD_ELEMENT_SIZE} bytes, got {len(value)}")

    header = struct.pack('>III', NUM_PUBLIC_INPUTS, 0, NUM_PUBLIC_INPUTS)
    return b''.join([
        header,
        min_threshold.to_bytes(FIELD_ELEMENT_SIZE, 'big'),
        proposal_id.to_bytes(FIELD_ELEMENT_SIZE, 'big'),
        bytes(vote_commitment),
        bytes(nullifier),
    ])
