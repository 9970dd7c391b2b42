"""
houseflip - Settlement Store

Durable record of settled transaction references, house statistics,
pending payout intents and the reveal audit log.

Files (under data_dir):
  settlement_state.json  - processed records + stats + intents, one document
  reveals.jsonl          - append-only log of every revealed server seed
"""

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

from .flip_types import HouseStats, PayoutIntent, Reveal, SettlementRecord

log = logging.getLogger(__name__)

STATE_FILE = "settlement_state.json"
REVEALS_FILE = "reveals.jsonl"
STATE_VERSION = "1.0"


def write_json_durable(path: Path, data: dict):
    """Write JSON atomically: temp file, fsync, rename over the target."""
    tmp_file = path.with_suffix(".tmp")
    with open(tmp_file, "w") as f:
        json.dump(data, f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_file, path)
    # Make the rename itself durable
    dir_fd = os.open(str(path.parent), os.O_RDONLY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


class SettlementStore:
    """
    Settlement state with JSON persistence.

    Usage:
        store = SettlementStore("/var/lib/houseflip")
        if not store.is_processed(signature):
            ...
            store.record_settlement(record)
    """

    def __init__(self, data_dir="data"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.state_path = self.data_dir / STATE_FILE
        self.reveals_path = self.data_dir / REVEALS_FILE
        self._lock = threading.RLock()
        self.records: Dict[str, SettlementRecord] = {}
        self.intents: Dict[str, PayoutIntent] = {}
        self.stats = HouseStats()
        self._load()

    def _load(self):
        """Load from disk."""
        if not self.state_path.exists():
            log.info(f"No settlement state at {self.state_path}, starting fresh")
            return
        # Corrupt state is fatal, never reset to empty
        with open(self.state_path) as f:
            data = json.load(f)
        for ref, record_data in data.get("processed", {}).items():
            self.records[ref] = SettlementRecord.from_dict(record_data)
        for ref, intent_data in data.get("intents", {}).items():
            self.intents[ref] = PayoutIntent.from_dict(intent_data)
        self.stats = HouseStats.from_dict(data.get("stats", {}))
        log.info(f"Loaded {len(self.records)} settlements, "
                 f"{len(self.intents)} pending payout intents")

    def save(self):
        """Persist to disk."""
        with self._lock:
            self._write(self.records, self.intents, self.stats)

    def _write(self, records: Dict[str, SettlementRecord],
               intents: Dict[str, PayoutIntent], stats: HouseStats):
        data = {
            "version": STATE_VERSION,
            "updated_ts": int(time.time()),
            "stats": stats.to_dict(),
            "processed": {ref: r.to_dict() for ref, r in records.items()},
            "intents": {ref: i.to_dict() for ref, i in intents.items()},
        }
        write_json_durable(self.state_path, data)

    def _commit(self, records: Dict[str, SettlementRecord],
                intents: Dict[str, PayoutIntent], stats: HouseStats):
        """Write the new state, then swap it in. Memory never runs ahead of disk."""
        self._write(records, intents, stats)
        self.records = records
        self.intents = intents
        self.stats = stats

    # =========================================================================
    # PROCESSED SET
    # =========================================================================

    def is_processed(self, transaction_ref: str) -> bool:
        with self._lock:
            return transaction_ref in self.records

    def get_record(self, transaction_ref: str) -> Optional[SettlementRecord]:
        with self._lock:
            return self.records.get(transaction_ref)

    def record_settlement(self, record: SettlementRecord):
        """
        Append a settlement, update stats, drop any payout intent for the
        same reference, and persist before returning.
        """
        with self._lock:
            if record.transaction_ref in self.records:
                raise ValueError(f"Settlement already recorded: {record.transaction_ref}")
            records = dict(self.records)
            records[record.transaction_ref] = record
            stats = HouseStats.from_dict(self.stats.to_dict())
            stats.apply(record)
            intents = dict(self.intents)
            intents.pop(record.transaction_ref, None)
            self._commit(records, intents, stats)

    def get_stats(self) -> HouseStats:
        with self._lock:
            return HouseStats.from_dict(self.stats.to_dict())

    # =========================================================================
    # PAYOUT INTENTS
    # =========================================================================

    def put_intent(self, intent: PayoutIntent):
        with self._lock:
            intents = dict(self.intents)
            intents[intent.transaction_ref] = intent
            self._commit(self.records, intents, self.stats)

    def get_intent(self, transaction_ref: str) -> Optional[PayoutIntent]:
        with self._lock:
            return self.intents.get(transaction_ref)

    def list_intents(self) -> List[PayoutIntent]:
        with self._lock:
            return list(self.intents.values())

    # =========================================================================
    # REVEAL LOG
    # =========================================================================

    def append_reveal(self, reveal: Reveal, purpose: str,
                      transaction_ref: Optional[str] = None):
        """Append a revealed seed to the audit log (fsynced)."""
        entry = reveal.to_dict()
        entry["purpose"] = purpose
        entry["transaction_ref"] = transaction_ref
        entry["timestamp"] = int(time.time())
        with self._lock:
            with open(self.reveals_path, "a") as f:
                f.write(json.dumps(entry) + "\n")
                f.flush()
                os.fsync(f.fileno())

    def recent_reveals(self, limit: int = 10) -> List[dict]:
        """Latest reveals, newest first."""
        if limit <= 0:
            return []
        with self._lock:
            if not self.reveals_path.exists():
                return []
            with open(self.reveals_path) as f:
                lines = [line for line in f if line.strip()]
        return [json.loads(line) for line in reversed(lines[-limit:])]
