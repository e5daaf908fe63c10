"""Import of the legacy ``transactions.json`` history file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

from .ledger import TransactionLedger
from ..core.recovery.errors import ValidationError

logger = logging.getLogger(__name__)


def load_legacy_transactions(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read the JSON array written by older relay versions.

    Accepts either a bare list or an object with a ``transactions`` list.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValidationError(f"{path} is not valid JSON: {exc.msg}") from exc
    if isinstance(raw, dict):
        raw = raw.get("transactions", [])
    if not isinstance(raw, list):
        raise ValidationError(f"{path} does not contain a list of transactions")
    return [item for item in raw if isinstance(item, dict)]


def import_legacy_transactions(ledger: TransactionLedger, path: Union[str, Path]) -> int:
    """Backfill the ledger from ``path`` in a single atomic batch.

    Returns the number of records written; 0 when the file does not exist.
    """
    source = Path(path)
    if not source.exists():
        logger.info("No legacy transaction file at %s", source)
        return 0

    records = load_legacy_transactions(source)
    count = ledger.upsert_many(records)
    logger.info("Imported %d legacy transactions from %s", count, source)
    return count
