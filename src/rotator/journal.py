"""Append-only trade journal persisted as a single JSON file.

The journal owns the history file. Every executed swap is appended in
execution order and never reordered. The one permitted in-place change is
raising context.token_price_changes.highest_price on the most recent
rotation into a held token (update_highest_price); nothing else rewrites
history.

Every write replaces the whole file atomically (temp file in the same
directory, fsync, os.replace), so a crash mid-write leaves either the old
or the new history, never a partial one. A file that fails to parse or
validate raises JournalCorruptError.

History is small (one record per swap), so every operation reads the full
file; no index is kept.
"""

import os
import tempfile
import time
from decimal import Decimal
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from rotator.exceptions import JournalCorruptError
from rotator.logging import get_logger
from rotator.models import EntryState, TradeRecord

logger = get_logger(__name__)

_HISTORY_ADAPTER = TypeAdapter(list[TradeRecord])


class TradeJournal:
    """File-backed trade history.

    Args:
        path: History file location. Created on first append.
        base_symbol: The base asset; entries are rotations base -> token.
    """

    def __init__(self, path: str | Path, base_symbol: str) -> None:
        self._path = Path(path)
        self._base_symbol = base_symbol

    @property
    def path(self) -> Path:
        return self._path

    def records(self) -> list[TradeRecord]:
        """Load the full history in execution order.

        Raises:
            JournalCorruptError: If the file is not a valid history.
        """
        if not self._path.exists():
            return []
        try:
            data = self._path.read_bytes()
        except OSError as e:
            raise JournalCorruptError(f"Cannot read {self._path}: {e}") from e
        if not data.strip():
            return []
        try:
            return _HISTORY_ADAPTER.validate_json(data)
        except ValidationError as e:
            raise JournalCorruptError(
                f"{self._path} is not a valid trade history: {e.error_count()} errors"
            ) from e

    def append(self, record: TradeRecord) -> None:
        """Append a record and persist the full history.

        No deduplication: appending the same record twice stores it twice.
        If the existing file is corrupt it is moved aside, not overwritten,
        and a fresh history is started so the new trade is never lost.
        """
        try:
            history = self.records()
        except JournalCorruptError as e:
            quarantined = self._quarantine()
            logger.error(
                "journal_corrupt_quarantined",
                path=str(self._path),
                moved_to=str(quarantined),
                error=str(e),
            )
            history = []

        history.append(record)
        self._write(history)
        logger.info(
            "trade_journaled",
            token_in=record.token_in,
            token_out=record.token_out,
            records=len(history),
        )

    def find_last_rotation_into(self, symbol: str) -> EntryState:
        """Recover entry price and trailing high for a held token.

        Scans newest to oldest for the latest base -> symbol rotation.
        Returns an empty EntryState when there is none or the history is
        unreadable; stop rules that need a baseline then stay inactive.
        """
        try:
            history = self.records()
        except JournalCorruptError as e:
            logger.error("journal_unreadable_no_history", path=str(self._path), error=str(e))
            return EntryState()

        index = self._last_rotation_index(history, symbol)
        if index is None:
            return EntryState()

        record = history[index]
        highest = record.context.token_price_changes.highest_price
        return EntryState(
            entry_price=record.api_price,
            highest_price=highest if highest is not None else record.api_price,
        )

    def update_highest_price(self, symbol: str, observed_price: Decimal) -> bool:
        """Raise the stored trailing high for symbol if observed_price exceeds it.

        Only the most recent base -> symbol record is touched, and only
        upward. Returns True if the history was rewritten.

        Raises:
            JournalCorruptError: If the history cannot be read.
        """
        history = self.records()
        index = self._last_rotation_index(history, symbol)
        if index is None:
            return False

        record = history[index]
        token_context = record.context.token_price_changes
        current = (
            token_context.highest_price
            if token_context.highest_price is not None
            else record.api_price
        )
        if observed_price <= current:
            return False

        token_context.highest_price = observed_price
        self._write(history)
        logger.info(
            "highest_price_updated",
            symbol=symbol,
            previous=str(current),
            highest=str(observed_price),
        )
        return True

    def _last_rotation_index(self, history: list[TradeRecord], symbol: str) -> int | None:
        for i in range(len(history) - 1, -1, -1):
            record = history[i]
            if record.token_out == symbol and record.token_in == self._base_symbol:
                return i
        return None

    def _write(self, history: list[TradeRecord]) -> None:
        payload = _HISTORY_ADAPTER.dump_json(history, indent=2)
        try:
            _HISTORY_ADAPTER.validate_json(payload)
        except ValidationError as e:
            raise JournalCorruptError(
                f"Refusing to write an unreadable history to {self._path}: "
                f"{e.error_count()} errors"
            ) from e
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _quarantine(self) -> Path:
        target = self._path.with_name(f"{self._path.name}.corrupt-{int(time.time())}")
        os.replace(self._path, target)
        return target
