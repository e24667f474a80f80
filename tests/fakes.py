"""In-memory test doubles for the persistence gateway."""
import itertools
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from database.gateway import Row, TableGateway
from database.models import TABLES, new_id, utcnow


class InMemoryGateway(TableGateway):
    """Dict-backed TableGateway with failure injection.

    Set ``fail_on[(action, table)] = exc`` to make the next matching call
    raise ``exc``; set ``probe_error`` to make ``probe()`` raise.
    """

    def __init__(self) -> None:
        self.tables: Dict[str, List[Row]] = {name: [] for name in TABLES}
        self.fail_on: Dict[Tuple[str, str], Exception] = {}
        self.probe_error: Optional[Exception] = None
        self.calls: List[Tuple[str, str]] = []
        self.closed = False

    def _check(self, action: str, table: str) -> None:
        self.calls.append((action, table))
        error = self.fail_on.get((action, table))
        if error is not None:
            raise error

    def seed(self, table: str, **row: Any) -> Row:
        """Insert a row directly, bypassing failure injection."""
        now = utcnow()
        stored = {"id": new_id(), "created_at": now, "updated_at": now, **row}
        self.tables[table].append(stored)
        return dict(stored)

    def select(self, table, order_by=None, descending=False):
        self._check("select", table)
        rows = [dict(r) for r in self.tables[table]]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by) or ""), reverse=descending)
        return rows

    def find(self, table, filters):
        self._check("find", table)
        return [
            dict(r) for r in self.tables[table]
            if all(r.get(k) == v for k, v in filters.items())
        ]

    def insert(self, table, row):
        self._check("insert", table)
        return self.seed(table, **row)

    def update(self, table, record_id, changes):
        self._check("update", table)
        for row in self.tables[table]:
            if row["id"] == record_id:
                row.update(changes)
                row["updated_at"] = utcnow()
                return dict(row)
        return None

    def delete(self, table, record_id):
        self._check("delete", table)
        before = len(self.tables[table])
        self.tables[table] = [r for r in self.tables[table] if r["id"] != record_id]
        return len(self.tables[table]) < before

    def probe(self):
        self.calls.append(("probe", ""))
        if self.probe_error is not None:
            raise self.probe_error

    def close(self):
        self.closed = True


def sequential_barcodes(prefix: str = "BLTEST"):
    """Deterministic barcode factory: BLTEST000001, BLTEST000002, ..."""
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter):06d}"


def place_order(lifecycle, actor, lab, ptype=None, doctor=None, units=1,
                arrival=date(2024, 1, 10), due=date(2024, 1, 20), **extra):
    """Helper: create an order through the lifecycle service."""
    return lifecycle.create_order(
        actor,
        patient_name=extra.pop("patient_name", "张三"),
        doctor_id=(doctor or lab.wang).id,
        prosthesis_type_id=(ptype or lab.crown).id,
        arrival_date=arrival,
        delivery_date=due,
        unit_count=units,
        **extra,
    )
