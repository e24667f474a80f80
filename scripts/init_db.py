"""初始化数据库"""
import sys
import os

# 添加项目根目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import DatabaseManager
from config.lab_config import lab_config
from loguru import logger


def init_database(database_url=None):
    """初始化数据库和种子数据（修复体类型目录、管理员账号），可重复执行"""
    logger.info("Initializing database...")

    # 创建数据库管理器（仅 SQL 后端）
    db = DatabaseManager(database_url, backend="sql")

    try:
        # 创建所有表
        logger.info("Creating tables...")
        db.create_tables()
        db.refresh()
        store = db.store

        # 插入种子数据
        logger.info("Inserting seed data...")

        existing_types = {t.name for t in store.prosthesis_types}
        for ptype in lab_config.get_prosthesis_types():
            if ptype['name'] in existing_types:
                continue
            store.add_prosthesis_type(**ptype)
            logger.info(f"Created prosthesis type: {ptype['name']}")

        existing_users = {u.username for u in store.users}
        for user in lab_config.get_seed_users():
            if user['username'] in existing_users:
                continue
            store.add_user(**user)
            logger.info(f"Created user: {user['username']}")

        logger.info("Database initialization completed!")
    finally:
        db.close()


if __name__ == "__main__":
    init_database()
