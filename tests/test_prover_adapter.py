import json
import subprocess
import threading
from pathlib import Path

import pytest

from shielded_pool.crypto_core.errors import ProvingFailed
from shielded_pool.pool import prover_adapter
from shielded_pool.pool.prover_adapter import SnarkjsProver, prove_concurrently
from shielded_pool.schemas_api import ProofArtifact, RagequitInputRecord

PROOF_JSON = {
    "pi_a": ["1", "2", "1"],
    "pi_b": [["3", "4"], ["5", "6"], ["1", "0"]],
    "pi_c": ["7", "8", "1"],
    "protocol": "groth16",
    "curve": "bn128",
}


@pytest.fixture
def circuit(tmp_path):
    wasm = tmp_path / "commitment.wasm"
    zkey = tmp_path / "commitment.zkey"
    wasm.write_bytes(b"\0asm")
    zkey.write_bytes(b"zkey")
    return wasm, zkey


@pytest.fixture
def record():
    return RagequitInputRecord(value=50, label=9, nullifier=10, secret=11)


def _fake_fullprove(seen):
    def run(cmd, **kwargs):
        seen.append((cmd, kwargs, json.loads(Path(cmd[-5]).read_text())))
        Path(cmd[-2]).write_text(json.dumps(PROOF_JSON))
        Path(cmd[-1]).write_text(json.dumps(["50", "9", "100", "200"]))
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")
    return run


def test_prove_runs_fullprove_and_parses_output(monkeypatch, circuit, record):
    seen = []
    monkeypatch.setattr(prover_adapter.subprocess, "run", _fake_fullprove(seen))
    prover = SnarkjsProver(*circuit, snarkjs_bin="npx snarkjs", timeout=5)

    artifact = prover.prove(record)

    assert isinstance(artifact, ProofArtifact)
    assert artifact.public_signals == (50, 9, 100, 200)
    assert artifact.point_b.x.imaginary == 4
    cmd, kwargs, inputs = seen[0]
    assert cmd[:4] == ["npx", "snarkjs", "groth16", "fullprove"]
    assert cmd[5:7] == [str(circuit[0]), str(circuit[1])]
    assert kwargs["timeout"] == 5
    assert inputs == record.to_circuit_inputs()


def test_missing_artifacts(tmp_path, record):
    prover = SnarkjsProver(tmp_path / "nope.wasm", tmp_path / "nope.zkey")
    with pytest.raises(ProvingFailed):
        prover.prove(record)


def test_nonzero_exit_carries_stderr(monkeypatch, circuit, record):
    def run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="Error: Assert Failed. line: 42")

    monkeypatch.setattr(prover_adapter.subprocess, "run", run)
    with pytest.raises(ProvingFailed) as exc:
        SnarkjsProver(*circuit).prove(record)
    assert "Assert Failed" in exc.value.diagnostic


def test_timeout(monkeypatch, circuit, record):
    def run(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    monkeypatch.setattr(prover_adapter.subprocess, "run", run)
    with pytest.raises(ProvingFailed, match="timed out"):
        SnarkjsProver(*circuit, timeout=1).prove(record)


def test_timeout_diagnostic_is_text(monkeypatch, circuit, record):
    def run(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"], stderr=b"witness generation stalled")

    monkeypatch.setattr(prover_adapter.subprocess, "run", run)
    with pytest.raises(ProvingFailed) as exc:
        SnarkjsProver(*circuit, timeout=1).prove(record)
    assert exc.value.diagnostic == "witness generation stalled"
    assert "b'" not in str(exc.value)


def test_snarkjs_not_installed(monkeypatch, circuit, record):
    def run(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(prover_adapter.subprocess, "run", run)
    with pytest.raises(ProvingFailed):
        SnarkjsProver(*circuit).prove(record)


def test_no_output_files(monkeypatch, circuit, record):
    monkeypatch.setattr(
        prover_adapter.subprocess, "run",
        lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0, stdout="", stderr=""),
    )
    with pytest.raises(ProvingFailed):
        SnarkjsProver(*circuit).prove(record)


def test_no_retry_on_failure(monkeypatch, circuit, record):
    calls = []

    def run(cmd, **kwargs):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="boom")

    monkeypatch.setattr(prover_adapter.subprocess, "run", run)
    with pytest.raises(ProvingFailed):
        SnarkjsProver(*circuit).prove(record)
    assert len(calls) == 1


def test_for_ragequit_uses_ragequit_artifacts():
    prover = SnarkjsProver.for_ragequit()
    assert prover.wasm_path == prover_adapter.config.RAGEQUIT_WASM
    assert prover.zkey_path == prover_adapter.config.RAGEQUIT_ZKEY


def test_prove_concurrently_keeps_order(prover):
    records = [RagequitInputRecord(value=v, label=1, nullifier=2, secret=3) for v in range(1, 9)]
    artifacts = prove_concurrently(prover, records, max_workers=4)
    assert [a.public_signals[0] for a in artifacts] == list(range(1, 9))
    assert len(prover.calls) == 8


def test_prove_concurrently_runs_in_parallel():
    barrier = threading.Barrier(3, timeout=5)

    class Waiting:
        def prove(self, record):
            barrier.wait()
            return ProofArtifact.from_snarkjs(PROOF_JSON, [record.value])

    records = [RagequitInputRecord(value=v, label=1, nullifier=2, secret=3) for v in (1, 2, 3)]
    artifacts = prove_concurrently(Waiting(), records, max_workers=3)
    assert [a.public_signals for a in artifacts] == [(1,), (2,), (3,)]


def test_prove_concurrently_propagates_failure(prover):
    class Failing:
        def prove(self, record):
            if record.value == 2:
                raise ProvingFailed("witness rejected")
            return prover.prove(record)

    records = [RagequitInputRecord(value=v, label=1, nullifier=2, secret=3) for v in (1, 2, 3)]
    with pytest.raises(ProvingFailed):
        prove_concurrently(Failing(), records, max_workers=2)


def test_prove_concurrently_empty(prover):
    assert prove_concurrently(prover, []) == []
