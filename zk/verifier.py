"""
Proof verifier collaborators.

The engine hands ``(proof_bytes, public_witness_bytes)`` to whichever
verifier it was built with and only looks at the boolean answer. Three
implementations are provided:

- StaticProofVerifier: always accepts or always rejects (tests, dry runs)
- ProofServerVerifier: HTTP client for a proof server's /verify-proof
- SunspotCliVerifier: runs the sunspot CLI against a verifying key
"""

import base64
import logging
import os
import stat
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

import requests

from .witness import ZKError

logger = logging.getLogger(__name__)

DEFAULT_VERIFIER_PROGRAM_ID = "sunspot-groth16-vote-verifier"
SUNSPOT_SUCCESS_MARKER = "Verification successful"


class VerifierUnavailableError(ZKError):
    """Verifier could not be reached or crashed before answering"""
    pass


class ProofVerifier(Protocol):
    program_id: str

    def verify(self, proof: bytes, public_witness: bytes) -> bool:
        ...


class StaticProofVerifier:
    """Verifier double with a fixed answer; remembers what it was asked"""

    def __init__(self, accept: bool = True,
                 program_id: str = DEFAULT_VERIFIER_PROGRAM_ID):
        self.accept = accept
        self.program_id = program_id
        self.calls: List[Tuple[bytes, bytes]] = []

    def verify(self, proof: bytes, public_witness: bytes) -> bool:
        self.calls.append((bytes(proof), bytes(public_witness)))
        return self.accept


class ProofServerVerifier:
    """Delegates verification to a proof server over HTTP"""

    def __init__(self, base_url: str, timeout: float = 30.0,
                 program_id: str = DEFAULT_VERIFIER_PROGRAM_ID,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.program_id = program_id
        self.session = session or requests.Session()

    def health(self) -> Dict[str, Any]:
        try:
            response = self.session.get(
                f"{self.base_url}/health", timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise VerifierUnavailableError(
                f"Proof server health check failed: {e}") from e

    def is_available(self) -> bool:
        try:
            return self.health().get('status') in ('ok', 'healthy')
        except VerifierUnavailableError as e:
            logger.warning(str(e))
            return False

    def verify(self, proof: bytes, public_witness: bytes) -> bool:
        payload = {
            'proof': base64.b64encode(bytes(proof)).decode('ascii'),
            'publicWitness': base64.b64encode(bytes(public_witness)).decode('ascii'),
        }
        start_time = time.time()
        try:
            response = self.session.post(
                f"{self.base_url}/verify-proof", json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise VerifierUnavailableError(
                f"Proof server verification failed: {e}") from e

        if not isinstance(data, dict):
            raise VerifierUnavailableError(
                f"Proof server returned {type(data).__name__}, expected a JSON object")

        # Only a literal JSON true accepts
        is_valid = data.get('valid') is True
        logger.info(
            f"Proof server verified proof in {time.time() - start_time:.3f}s: "
            f"{'valid' if is_valid else 'invalid'}")
        return is_valid


class SunspotCliVerifier:
    """Verifies Groth16 proofs with the sunspot command line tool"""

    def __init__(self, verifying_key: Path, sunspot_path: str = "sunspot",
                 timeout: float = 60.0,
                 program_id: str = DEFAULT_VERIFIER_PROGRAM_ID):
        self.verifying_key = Path(verifying_key)
        self.sunspot_path = sunspot_path
        self.timeout = timeout
        self.program_id = program_id

    @staticmethod
    def _write_private(directory: Path, name: str, data: bytes) -> Path:
        """Write a file readable only by the current user"""
        path = directory / name
        fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_EXCL,
                     stat.S_IRUSR | stat.S_IWUSR)
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        return path

    def verify(self, proof: bytes, public_witness: bytes) -> bool:
        if not self.verifying_key.exists():
            raise VerifierUnavailableError(
                f"Verifying key not found: {self.verifying_key}")

        start_time = time.time()
        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir)
            proof_file = self._write_private(temp_path, 'vote.proof', bytes(proof))
            witness_file = self._write_private(temp_path, 'vote.pw', bytes(public_witness))

            cmd = [
                self.sunspot_path, 'verify',
                str(self.verifying_key),
                str(proof_file),
                str(witness_file),
            ]
            try:
                result = subprocess.run(
                    cmd, capture_output=True, timeout=self.timeout)
            except (OSError, subprocess.TimeoutExpired) as e:
                raise VerifierUnavailableError(f"sunspot verify failed to run: {e}") from e

        stdout = result.stdout.decode('utf-8', errors='replace')
        is_valid = result.returncode == 0 and SUNSPOT_SUCCESS_MARKER in stdout
        if not is_valid:
            stderr = result.stderr.decode('utf-8', errors='replace')
            logger.debug(f"sunspot verify rejected proof: {stderr.strip()}")
        logger.info(
            f"sunspot verified proof in {time.time() - start_time:.3f}s: "
            f"{'valid' if is_valid else 'invalid'}")
        return is_valid
