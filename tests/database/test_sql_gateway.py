"""SqlTableGateway tests against a temp SQLite database."""
from datetime import date
from decimal import Decimal

import pytest

from database.connection import DatabaseConnection
from database.errors import ConnectivityError, GatewayError
from database.sql_gateway import SqlTableGateway


@pytest.fixture
def gateway(temp_db):
    return temp_db.gateway


class TestSqlGatewayCrud:
    """Test select / find / insert / update / delete."""

    def test_insert_assigns_id_and_timestamps(self, gateway):
        row = gateway.insert("clinics", {"name": "阳光口腔"})
        assert len(row["id"]) == 32
        assert row["created_at"] is not None
        assert row["current_balance"] == Decimal("0")

    def test_select_ordering(self, gateway):
        gateway.insert("clinics", {"name": "B 诊所"})
        gateway.insert("clinics", {"name": "A 诊所"})
        names = [r["name"] for r in gateway.select("clinics", order_by="name")]
        assert names == ["A 诊所", "B 诊所"]
        names = [r["name"] for r in gateway.select("clinics", order_by="name", descending=True)]
        assert names == ["B 诊所", "A 诊所"]

    def test_find_with_bool_filter(self, gateway):
        gateway.insert("users", {"username": "a", "password": "x", "name": "A", "is_active": True})
        gateway.insert("users", {"username": "b", "password": "x", "name": "B", "is_active": False})
        rows = gateway.find("users", {"is_active": True})
        assert [r["username"] for r in rows] == ["a"]

    def test_update_and_missing_record(self, gateway):
        row = gateway.insert("expenses", {"date": date(2024, 1, 5), "category": "材料",
                                          "description": "氧化锆块", "amount": Decimal("300")})
        updated = gateway.update("expenses", row["id"], {"amount": Decimal("350")})
        assert updated["amount"] == Decimal("350")
        assert gateway.update("expenses", "missing", {"amount": 1}) is None

    def test_delete(self, gateway):
        row = gateway.insert("clinics", {"name": "临时"})
        assert gateway.delete("clinics", row["id"]) is True
        assert gateway.delete("clinics", row["id"]) is False

    def test_unknown_table_and_column(self, gateway):
        with pytest.raises(GatewayError, match="Unknown table"):
            gateway.select("invoices")
        with pytest.raises(GatewayError, match="Unknown columns"):
            gateway.insert("clinics", {"name": "x", "rating": 5})

    def test_constraint_violation_wrapped(self, gateway):
        gateway.insert("users", {"username": "dup", "password": "x", "name": "A"})
        with pytest.raises(GatewayError):
            gateway.insert("users", {"username": "dup", "password": "y", "name": "B"})


class TestSqlGatewayProbe:
    """Test the connectivity probe."""

    def test_probe_ok(self, gateway):
        gateway.probe()

    def test_probe_missing_schema(self, tmp_path):
        conn = DatabaseConnection(f"sqlite:///{tmp_path / 'empty.db'}")
        gateway = SqlTableGateway(conn)
        with pytest.raises(ConnectivityError) as exc_info:
            gateway.probe()
        assert exc_info.value.category == ConnectivityError.MISSING_SCHEMA
        gateway.close()
