"""
Recovery State Store
====================
Durable JSON hand-off files between pipeline stages.

    transactions_to_execute.json    SlotManifest        populate -> execute
    erroneous_txs.json              InsertionRecoverySet populate -> retry
    erroneous_proposal_txs.json     SlotManifest        execute -> execute

Writes go to a temporary file first and are renamed into place so a crash
never leaves a half-written artifact behind.
"""

import json
import os
from typing import Any, Dict, Optional

from grant_proposer.execution.models import InsertionRecoverySet, SlotManifest, WorkItem, WorkItemBatch
from grant_proposer.shared.errors import ProtocolPreconditionError
from grant_proposer.shared.system.logging import Logger

MANIFEST_FILE = "transactions_to_execute.json"
INSERTION_RECOVERY_FILE = "erroneous_txs.json"
EXECUTION_RECOVERY_FILE = "erroneous_proposal_txs.json"


class RecoveryStateStore:
    """
    Reads and writes stage artifacts under one output directory.

    Usage:
        store = RecoveryStateStore("./out")
        path = store.save_manifest(manifest)
        manifest = store.load_manifest(path)
    """

    def __init__(self, output_dir: str = "."):
        self.output_dir = output_dir

    def path_for(self, filename: str) -> str:
        return os.path.join(self.output_dir, filename)

    # =========================================================================
    # RAW JSON
    # =========================================================================

    def _write_json(self, path: str, data: Dict[str, Any]) -> str:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)

        Logger.debug(f"[RECOVERY] Wrote {path}")
        return path

    @staticmethod
    def _read_json(path: str) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ProtocolPreconditionError(f"Cannot read {path}: {e}") from e

    @staticmethod
    def _parse(path: str, kind: str, parser, raw: Dict[str, Any]):
        try:
            return parser(raw)
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolPreconditionError(f"{path} is not a valid {kind}: {e}") from e

    # =========================================================================
    # STAGE ARTIFACTS
    # =========================================================================

    def save_manifest(self, manifest: SlotManifest, path: Optional[str] = None) -> str:
        return self._write_json(path or self.path_for(MANIFEST_FILE), manifest.to_dict())

    def load_manifest(self, path: str) -> SlotManifest:
        return self._parse(path, "slot manifest", SlotManifest.from_dict, self._read_json(path))

    def save_insertion_recovery(self, recovery: InsertionRecoverySet, path: Optional[str] = None) -> str:
        return self._write_json(path or self.path_for(INSERTION_RECOVERY_FILE), recovery.to_dict())

    def load_insertion_recovery(self, path: str) -> InsertionRecoverySet:
        return self._parse(path, "insertion recovery set", InsertionRecoverySet.from_dict, self._read_json(path))

    def save_execution_recovery(self, recovery: SlotManifest, path: Optional[str] = None) -> str:
        return self._write_json(path or self.path_for(EXECUTION_RECOVERY_FILE), recovery.to_dict())

    def save_work_item(self, item: WorkItem, path: str) -> str:
        return self._write_json(path, item.to_dict())

    def load_work_item(self, path: str) -> WorkItem:
        return self._parse(path, "work item", WorkItem.from_dict, self._read_json(path))

    def save_batch(self, batch: WorkItemBatch, path: str) -> str:
        return self._write_json(path, batch.to_dict())

    def load_batch(self, path: str) -> WorkItemBatch:
        return self._parse(path, "work-item batch", WorkItemBatch.from_dict, self._read_json(path))

    def discard(self, path: str) -> bool:
        """Remove a consumed recovery artifact. Returns True if a file was removed."""
        if os.path.exists(path):
            os.remove(path)
            Logger.info(f"[RECOVERY] Consumed {path}")
            return True
        return False
