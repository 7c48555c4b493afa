from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple, Union

from shielded_pool import config
from shielded_pool.crypto_core.hasher import Hasher
from shielded_pool.crypto_core.proof_codec import decode_verifier_payload
from shielded_pool.logging_config import get_logger
from shielded_pool.pool.state import PoolState

logger = get_logger("pool.eventlog")

EVENT_KINDS = ("Deposit", "LabelApproved", "Withdrawal", "Ragequit", "WindDown")

DDL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS tx_log(
  seq INTEGER PRIMARY KEY AUTOINCREMENT,
  id TEXT NOT NULL UNIQUE,
  kind TEXT NOT NULL,
  ts TEXT NOT NULL,
  payload TEXT NOT NULL
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def apply_event(state: PoolState, kind: str, payload: Dict[str, Any]) -> None:
    """Apply one logged event to a PoolState. Field elements travel as decimal strings."""
    if kind == "Deposit":
        state.deposit(int(payload["value"]), int(payload["precommitment"]), payload["depositor"])
        return
    if kind == "LabelApproved":
        state.approve_label(int(payload["label"]))
        return
    if kind == "Withdrawal":
        state.apply_withdrawal(
            decode_verifier_payload(bytes.fromhex(payload["payload_hex"])),
            payload["processooor"],
            bytes.fromhex(payload["data"]),
        )
        return
    if kind == "Ragequit":
        state.apply_ragequit(decode_verifier_payload(bytes.fromhex(payload["payload_hex"])), payload["depositor"])
        return
    if kind == "WindDown":
        state.wind_down()
        return
    raise ValueError(f"Unknown event kind: {kind}")


class EventLog:
    """
    Append-only sqlite log of pool events.

    Replaying the log into a fresh PoolState reproduces both accumulators
    leaf for leaf, hence the same roots the on-chain pool reports.
    """

    def __init__(self, db_path: Union[str, Path] = config.EVENTS_DB_PATH):
        self.db_path = Path(db_path)
        self._init()

    # ---------- storage ----------
    def _conn(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(self.db_path)

    def _init(self) -> None:
        cx = self._conn()
        try:
            with cx:
                cx.executescript(DDL)
        finally:
            cx.close()

    # ---------- writes ----------
    def append(self, kind: str, **payload: Any) -> str:
        """Append an event; an already-logged `event_id` is a no-op. Returns the event id."""
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {kind}")
        event_id = payload.pop("event_id", None) or str(uuid.uuid4())
        ts = payload.pop("ts", None) or _now()
        blob = json.dumps({k: _jsonable(v) for k, v in payload.items()}, separators=(",", ":"))

        cx = self._conn()
        try:
            with cx:
                if cx.execute("SELECT 1 FROM tx_log WHERE id=?", (event_id,)).fetchone():
                    logger.debug("event %s already logged", event_id)
                    return event_id
                cx.execute(
                    "INSERT INTO tx_log(id,kind,ts,payload) VALUES(?,?,?,?)",
                    (event_id, kind, ts, blob),
                )
        finally:
            cx.close()
        logger.debug("logged %s %s", kind, event_id)
        return event_id

    def log_deposit(self, value: int, precommitment: int, depositor: str, **extra: Any) -> str:
        return self.append("Deposit", value=value, precommitment=precommitment, depositor=depositor, **extra)

    def log_label_approved(self, label: int, **extra: Any) -> str:
        return self.append("LabelApproved", label=label, **extra)

    def log_withdrawal(self, payload: bytes, processooor: str, data: bytes, **extra: Any) -> str:
        return self.append(
            "Withdrawal", payload_hex=bytes(payload).hex(), processooor=processooor, data=bytes(data), **extra
        )

    def log_ragequit(self, payload: bytes, depositor: str, **extra: Any) -> str:
        return self.append("Ragequit", payload_hex=bytes(payload).hex(), depositor=depositor, **extra)

    def log_wind_down(self, **extra: Any) -> str:
        return self.append("WindDown", **extra)

    # ---------- reads ----------
    def events(self) -> List[Tuple[str, str, Dict[str, Any]]]:
        cx = self._conn()
        try:
            rows: Iterable[Tuple[str, str, str]] = cx.execute(
                "SELECT id, kind, payload FROM tx_log ORDER BY seq ASC"
            ).fetchall()
        finally:
            cx.close()
        return [(event_id, kind, json.loads(payload)) for event_id, kind, payload in rows]

    def replay(self, hasher: Hasher, scope: bytes, **state_kwargs: Any) -> PoolState:
        """Rebuild a fresh PoolState from the whole log, in append order."""
        state = PoolState(hasher, scope, **state_kwargs)
        n = 0
        for _event_id, kind, payload in self.events():
            apply_event(state, kind, payload)
            n += 1
        logger.info("replayed %d events: state root=%d asp root=%d", n, state.state_tree.root(), state.asp_tree.root())
        return state


def _jsonable(v: Any) -> Any:
    # sqlite/JSON ints are fine, but field elements exceed 64 bits; keep them as decimal strings
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    if isinstance(v, (bytes, bytearray)):
        return bytes(v).hex()
    return v


__all__ = ["EVENT_KINDS", "DDL", "EventLog", "apply_event"]
