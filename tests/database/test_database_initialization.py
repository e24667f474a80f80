"""数据库初始化测试。

测试建表、种子数据写入以及重复执行的幂等性。
"""
import os
import shutil
import tempfile

import pytest
from sqlalchemy import inspect

from config.lab_config import lab_config
from database import DatabaseManager
from database.models import TABLES
from scripts.init_db import init_database


@pytest.fixture
def db_url():
    temp_dir = tempfile.mkdtemp()
    try:
        yield f"sqlite:///{os.path.join(temp_dir, 'test_init.db')}"
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


class TestDatabaseInitialization:
    """数据库初始化测试类。"""

    def test_create_tables(self, db_url):
        """测试创建数据库表。"""
        db = DatabaseManager(db_url, backend="sql")
        try:
            db.create_tables()
            tables = inspect(db.conn.engine).get_table_names()
            for name in TABLES:
                assert name in tables
        finally:
            db.close()

    def test_seed_data(self, db_url):
        """测试种子数据：修复体类型目录与管理员账号。"""
        init_database(db_url)

        db = DatabaseManager(db_url, backend="sql")
        try:
            db.check_connection()
            names = {t.name for t in db.store.prosthesis_types}
            assert names == {t["name"] for t in lab_config.get_prosthesis_types()}
            admin = next(u for u in db.store.users if u.username == "admin")
            assert admin.can_view_prices is True
            assert admin.is_active is True
        finally:
            db.close()

    def test_init_is_idempotent(self, db_url):
        """测试重复初始化不会重复写入。"""
        init_database(db_url)
        init_database(db_url)

        db = DatabaseManager(db_url, backend="sql")
        try:
            db.refresh()
            assert len(db.store.prosthesis_types) == len(lab_config.get_prosthesis_types())
            assert len(db.store.users) == len(lab_config.get_seed_users())
        finally:
            db.close()
