# pool/prover_adapter.py
"""
Proving engine adapter.

The proving engine (snarkjs + the compiled circuit) is an external,
CPU-bound, seconds-scale blocking call. This module wraps it behind the
`Prover` interface:

- SnarkjsProver: writes the input record as JSON, runs
  `snarkjs groth16 fullprove input.json circuit.wasm circuit.zkey proof.json public.json`
  and parses the result into a ProofArtifact.
- prove_concurrently: runs independent withdrawals on a thread pool, one
  record per worker.

No retry happens here. A failed proof raises ProvingFailed with the engine's
stderr; whether to regenerate a witness and try again is the caller's call.
"""
from __future__ import annotations

import json
import shlex
import subprocess
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from shielded_pool import config
from shielded_pool.crypto_core.errors import ProvingFailed
from shielded_pool.logging_config import get_logger
from shielded_pool.schemas_api import ProofArtifact, RagequitInputRecord, WithdrawalInputRecord

logger = get_logger("pool.prover")

InputRecord = Union[WithdrawalInputRecord, RagequitInputRecord]


def _as_text(output: Union[str, bytes, None]) -> str:
    # TimeoutExpired carries raw bytes even when the process ran with text=True
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


class Prover(Protocol):
    def prove(self, record: InputRecord) -> ProofArtifact: ...


class SnarkjsProver:
    """
    Args:
        wasm_path: compiled circuit witness generator
        zkey_path: Groth16 proving key
        snarkjs_bin: snarkjs executable (may be "npx snarkjs")
        timeout: seconds before the proving process is killed
    """

    def __init__(
        self,
        wasm_path: Union[str, Path] = config.WITHDRAW_WASM,
        zkey_path: Union[str, Path] = config.WITHDRAW_ZKEY,
        snarkjs_bin: str = config.SNARKJS_BIN,
        timeout: int = config.PROVER_TIMEOUT_SEC,
    ):
        self.wasm_path = Path(wasm_path)
        self.zkey_path = Path(zkey_path)
        self.snarkjs_cmd = shlex.split(snarkjs_bin)
        self.timeout = timeout

    @classmethod
    def for_ragequit(cls, **kwargs) -> "SnarkjsProver":
        kwargs.setdefault("wasm_path", config.RAGEQUIT_WASM)
        kwargs.setdefault("zkey_path", config.RAGEQUIT_ZKEY)
        return cls(**kwargs)

    def _check_artifacts(self) -> None:
        for p in (self.wasm_path, self.zkey_path):
            if not p.exists():
                raise ProvingFailed(f"circuit artifact not found: {p}")

    def _run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        printable = " ".join(shlex.quote(x) for x in cmd)
        if config.VERBOSE:
            logger.debug("$ %s", printable)
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            logger.error("proving timed out after %ss", self.timeout)
            raise ProvingFailed(f"proving timed out after {self.timeout}s", diagnostic=_as_text(e.stderr)) from e
        except OSError as e:
            raise ProvingFailed(f"could not start prover: {printable}", diagnostic=str(e)) from e

        if result.returncode != 0:
            logger.error("prover exited with rc=%d", result.returncode)
            raise ProvingFailed(
                f"prover failed (rc={result.returncode}): {printable}",
                diagnostic=(result.stderr or result.stdout or "").strip(),
            )
        return result

    def prove(self, record: InputRecord) -> ProofArtifact:
        self._check_artifacts()
        inputs: Dict[str, Any] = record.to_circuit_inputs()

        with tempfile.TemporaryDirectory(prefix="shielded-proof-") as tmp:
            tmp_dir = Path(tmp)
            input_path = tmp_dir / "input.json"
            proof_path = tmp_dir / "proof.json"
            public_path = tmp_dir / "public.json"
            input_path.write_text(json.dumps(inputs))

            cmd = self.snarkjs_cmd + [
                "groth16", "fullprove",
                str(input_path), str(self.wasm_path), str(self.zkey_path),
                str(proof_path), str(public_path),
            ]
            start = time.time()
            self._run(cmd)
            logger.info("proof generated in %.2fs", time.time() - start)

            try:
                proof = json.loads(proof_path.read_text())
                public = json.loads(public_path.read_text())
            except (OSError, json.JSONDecodeError) as e:
                raise ProvingFailed("prover output missing or not JSON", diagnostic=str(e)) from e

        try:
            return ProofArtifact.from_snarkjs(proof, public)
        except ValueError as e:
            raise ProvingFailed("prover output is not a Groth16 proof", diagnostic=str(e)) from e


def prove_concurrently(
    prover: Prover,
    records: Sequence[InputRecord],
    max_workers: Optional[int] = None,
) -> List[ProofArtifact]:
    """
    Prove independent records in parallel. Results keep the input order; the
    first ProvingFailed propagates once all submitted work has settled.
    """
    if not records:
        return []
    workers = max_workers or config.PROVER_MAX_WORKERS
    logger.info("proving %d records on %d workers", len(records), workers)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="prover") as pool:
        futures = [pool.submit(prover.prove, r) for r in records]
        return [f.result() for f in futures]


__all__ = ["InputRecord", "Prover", "SnarkjsProver", "prove_concurrently"]
