"""Shared fixtures for the lab back-office tests.

Provides:
- temp_db: a DatabaseManager bound to a fresh temp-file SQLite database
- memory_gateway / store: an EntityStore over the in-memory gateway
- lab: a seeded store (one clinic, two doctors, three prosthesis types,
  one technician) used by the business service tests
- identities for each role and a fixed clock
"""
import os
import shutil
import tempfile
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from business.auth import Identity
from business.lifecycle import OrderLifecycle
from business.pricing import PricingEngine
from business.receivables import ReceivablesAggregator
from business.reporting import FinancialReportAggregator
from database import DatabaseManager
from database.entities import UserRole
from database.store import EntityStore
from tests.fakes import InMemoryGateway, sequential_barcodes


@pytest.fixture
def temp_db():
    """Yield a fresh DatabaseManager bound to a temp SQLite database."""
    temp_dir = tempfile.mkdtemp(prefix="lab-tests-")
    db_path = os.path.join(temp_dir, "test.db")
    manager = DatabaseManager(database_url=f"sqlite:///{db_path}", backend="sql")
    manager.create_tables()
    manager.refresh()

    try:
        yield manager
    finally:
        manager.close()
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def memory_gateway():
    return InMemoryGateway()


@pytest.fixture
def store(memory_gateway):
    """Connected EntityStore over an empty in-memory gateway."""
    entity_store = EntityStore(memory_gateway, barcode_factory=sequential_barcodes())
    entity_store.reload()
    return entity_store


@pytest.fixture
def fixed_now():
    """Stable datetime value for deterministic tests."""
    return datetime(2024, 1, 28, 10, 0, 0)


@pytest.fixture
def clock(fixed_now):
    return lambda: fixed_now


@pytest.fixture
def admin():
    return Identity("u-admin", "admin", "系统管理员", UserRole.ADMIN, can_view_prices=True)


@pytest.fixture
def technician_user():
    return Identity("u-tech", "li", "李师傅", UserRole.TECHNICIAN, can_view_prices=False)


@pytest.fixture
def accountant():
    return Identity("u-acc", "zhao", "赵会计", UserRole.ACCOUNTANT, can_view_prices=True)


@pytest.fixture
def blind_accountant():
    return Identity("u-acc2", "qian", "钱出纳", UserRole.ACCOUNTANT, can_view_prices=False)


@pytest.fixture
def lab(store):
    """Seeded store with a small catalogue.

    - clinic 阳光口腔 with doctors 王医生 and 陈医生
    - prosthesis types: 全瓷冠 1000 (model 150), 烤瓷桥 800 (no model fee),
      全口义齿 2000 (model 300)
    - technician 李师傅 with salary 10000
    """
    clinic = store.add_clinic(name="阳光口腔", phone="021-5555")
    wang = store.add_doctor(name="王医生", clinic_id=clinic.id)
    chen = store.add_doctor(name="陈医生", clinic_id=clinic.id)
    crown = store.add_prosthesis_type(name="全瓷冠", base_price=Decimal("1000"),
                                      model_price=Decimal("150"))
    bridge = store.add_prosthesis_type(name="烤瓷桥", base_price=Decimal("800"))
    denture = store.add_prosthesis_type(name="全口义齿", base_price=Decimal("2000"),
                                        model_price=Decimal("300"))
    tech = store.add_technician(name="李师傅", username="li", password="pw",
                                salary=Decimal("10000"), monthly_quota=40,
                                completed_jobs=30)
    return SimpleNamespace(
        store=store, clinic=clinic, wang=wang, chen=chen,
        crown=crown, bridge=bridge, denture=denture, tech=tech,
    )


@pytest.fixture
def pricing(lab):
    return PricingEngine(lab.store)


@pytest.fixture
def lifecycle(lab, pricing, clock):
    return OrderLifecycle(lab.store, pricing, clock=clock)


@pytest.fixture
def receivables(lab, pricing):
    return ReceivablesAggregator(lab.store, pricing)


@pytest.fixture
def reports(lab, pricing):
    return FinancialReportAggregator(lab.store, pricing)
