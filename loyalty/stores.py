"""
Collaborator interfaces consumed by the loyalty engine, plus reference
implementations.

- UnitSource: billable-unit records per client and period, each with a
  finalized/not-finalized quantity
- ClientStore: load/save ClientLoyaltyState by id, list enrolled clients

InMemory* implementations back the tests and embedding callers;
JsonClientStore and CsvUnitSource back the scheduled jobs CLI.
"""

import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol

import pandas as pd

from .errors import ClientNotFound, PersistenceFailure
from .schemas import UNIT_RECORDS_SCHEMA
from .state import ClientLoyaltyState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnitRecord:
    """One billable-unit source record (an estimate/project) for a client."""

    record_id: str
    client_id: str
    period: str
    quantity: Optional[float] = None  # None or 0 = not finalized

    @property
    def is_finalized(self) -> bool:
        return self.quantity is not None and self.quantity > 0


class UnitSource(Protocol):
    def records_for(self, client_id: str, period: str) -> List[UnitRecord]:
        ...


class ClientStore(Protocol):
    def load(self, client_id: str) -> ClientLoyaltyState:
        ...

    def save(self, state: ClientLoyaltyState) -> None:
        ...

    def list_all(self) -> List[str]:
        ...

    def list_enrolled(self) -> List[str]:
        ...


class InMemoryUnitSource:
    """Unit records held in memory, keyed by (client, period)."""

    def __init__(self, records: Optional[List[UnitRecord]] = None):
        self._records: Dict[tuple, List[UnitRecord]] = defaultdict(list)
        for record in records or []:
            self.add(record)

    def add(self, record: UnitRecord) -> None:
        self._records[(record.client_id, record.period)].append(record)

    def records_for(self, client_id: str, period: str) -> List[UnitRecord]:
        return list(self._records.get((client_id, period), []))


class CsvUnitSource:
    """
    Unit records loaded from a CSV export.

    Expected columns: RECORD_ID, CLIENT_ID, PERIOD (YYYY-MM), QTY (blank
    until the estimator finalizes the record).
    """

    REQUIRED_COLUMNS = ["RECORD_ID", "CLIENT_ID", "PERIOD", "QTY"]

    def __init__(self, path: Path | str):
        self.path = Path(path)
        df = pd.read_csv(self.path, dtype={"RECORD_ID": str, "CLIENT_ID": str, "PERIOD": str})
        missing = set(self.REQUIRED_COLUMNS) - set(df.columns)
        if missing:
            raise ValueError(f"Missing required columns: {missing}")
        self.df = UNIT_RECORDS_SCHEMA.validate(df)

    def records_for(self, client_id: str, period: str) -> List[UnitRecord]:
        rows = self.df[(self.df["CLIENT_ID"] == client_id) & (self.df["PERIOD"] == period)]
        return [
            UnitRecord(
                record_id=row.RECORD_ID,
                client_id=row.CLIENT_ID,
                period=row.PERIOD,
                quantity=None if pd.isna(row.QTY) else float(row.QTY),
            )
            for row in rows.itertuples(index=False)
        ]


class InMemoryClientStore:
    """
    Client states held in memory.

    States are copied on load and save so callers never share a live
    object with the store.
    """

    def __init__(self, states: Optional[List[ClientLoyaltyState]] = None):
        self._states: Dict[str, ClientLoyaltyState] = {}
        for state in states or []:
            self.save(state)

    def load(self, client_id: str) -> ClientLoyaltyState:
        state = self._states.get(client_id)
        if state is None:
            raise ClientNotFound(client_id)
        return state.copy()

    def save(self, state: ClientLoyaltyState) -> None:
        self._states[state.client_id] = state.copy()

    def list_all(self) -> List[str]:
        return sorted(self._states)

    def list_enrolled(self) -> List[str]:
        return sorted(cid for cid, state in self._states.items() if state.is_enrolled)


class JsonClientStore:
    """
    One JSON document per client under a directory.

    Writes go to a temporary file that then replaces the document, so a
    failed save never leaves a half-written state behind.
    """

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, client_id: str) -> Path:
        if not client_id or "/" in client_id or "\\" in client_id:
            raise ValueError(f"Invalid client id for a file store: {client_id!r}")
        return self.directory / f"{client_id}.json"

    def load(self, client_id: str) -> ClientLoyaltyState:
        path = self._path(client_id)
        if not path.exists():
            raise ClientNotFound(client_id)
        try:
            with path.open(encoding="utf-8") as f:
                return ClientLoyaltyState.from_dict(json.load(f))
        except (OSError, json.JSONDecodeError, KeyError, ValueError) as exc:
            raise PersistenceFailure(f"Cannot load client {client_id}: {exc}") from exc

    def save(self, state: ClientLoyaltyState) -> None:
        path = self._path(state.client_id)
        tmp = path.with_suffix(".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2)
            tmp.replace(path)
        except (OSError, TypeError, ValueError) as exc:
            tmp.unlink(missing_ok=True)
            raise PersistenceFailure(f"Cannot save client {state.client_id}: {exc}") from exc

    def list_all(self) -> List[str]:
        return sorted(p.stem for p in self.directory.glob("*.json"))

    def list_enrolled(self) -> List[str]:
        enrolled = []
        for client_id in self.list_all():
            try:
                if self.load(client_id).is_enrolled:
                    enrolled.append(client_id)
            except PersistenceFailure as exc:
                # Still listed so the batch reports it as failed
                logger.warning("Listing unreadable client %s: %s", client_id, exc)
                enrolled.append(client_id)
        return enrolled
