# shielded_pool/config.py
from __future__ import annotations

import os
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]

# ===== Data =====
DATA_DIR = Path(os.getenv("DATA_DIR", str(REPO_ROOT / "data")))
EVENTS_DB_PATH = Path(os.getenv("EVENTS_DB_PATH", str(DATA_DIR / "pool_events.db")))

# ===== Protocol =====
MAX_TREE_DEPTH: int = int(os.getenv("MAX_TREE_DEPTH", "32"))
ROOT_HISTORY_SIZE: int = int(os.getenv("ROOT_HISTORY_SIZE", "64"))

# ===== Prover (snarkjs) =====
SNARKJS_BIN: str = os.getenv("SNARKJS_BIN", "snarkjs")
CIRCUITS_DIR = Path(os.getenv("CIRCUITS_DIR", str(REPO_ROOT / "circuits" / "build")))
WITHDRAW_WASM = Path(os.getenv("WITHDRAW_WASM", str(CIRCUITS_DIR / "withdraw" / "withdraw_js" / "withdraw.wasm")))
WITHDRAW_ZKEY = Path(os.getenv("WITHDRAW_ZKEY", str(CIRCUITS_DIR / "withdraw" / "groth16_pkey.zkey")))
RAGEQUIT_WASM = Path(os.getenv("RAGEQUIT_WASM", str(CIRCUITS_DIR / "commitment" / "commitment_js" / "commitment.wasm")))
RAGEQUIT_ZKEY = Path(os.getenv("RAGEQUIT_ZKEY", str(CIRCUITS_DIR / "commitment" / "groth16_pkey.zkey")))
PROVER_TIMEOUT_SEC: int = int(os.getenv("PROVER_TIMEOUT_SEC", "300"))
PROVER_MAX_WORKERS: int = int(os.getenv("PROVER_MAX_WORKERS", str(max(1, (os.cpu_count() or 2) // 2))))

# ===== Logging =====
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
VERBOSE: bool = bool(int(os.getenv("VERBOSE", "0")))
