#!/usr/bin/env python3
"""交互式生成 .env 配置文件

使用方式：
    python scripts/setup_env.py

会引导用户填写必要的配置项，生成 .env 文件。
"""
import os

# 项目根目录
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
ENV_FILE = os.path.join(PROJECT_ROOT, ".env")


# 配置项定义：(env_key, 描述, 默认值, 是否必填)
CONFIG_ITEMS = [
    # === 数据后端 ===
    ("BACKEND", "数据后端类型（sql 本地数据库 / rest 托管数据服务）", "sql", True),
    ("DATABASE_URL", "SQL 数据库连接地址", "sqlite:///data/lab.db", False),
    ("BACKEND_URL", "REST 数据服务地址（rest 后端必填，如 https://xxxx.supabase.co）", "", False),
    ("BACKEND_API_KEY", "REST 数据服务访问密钥（rest 后端必填）", "", False),

    # === 同步 ===
    ("REFRESH_INTERVAL_SECONDS", "后台刷新间隔（秒）", "30", False),
    ("PROBE_TIMEOUT_SECONDS", "连接检测超时（秒）", "15", False),

    # === 业务策略 ===
    ("COMMISSION_RATE", "技师提成比例", "0.10", False),
    ("TRANSITION_POLICY", "订单状态流转策略（permissive / strict）", "permissive", False),
    ("MISSING_TYPE_POLICY", "修复体类型缺失时的定价策略（zero_price / raise）", "zero_price", False),
]

SECTION_NAMES = {
    "BACKEND": "# === 数据后端配置 ===",
    "DATABASE": "# === 数据后端配置 ===",
    "REFRESH": "# === 同步配置 ===",
    "PROBE": "# === 同步配置 ===",
    "COMMISSION": "# === 业务策略配置 ===",
    "TRANSITION": "# === 业务策略配置 ===",
    "MISSING": "# === 业务策略配置 ===",
}


def build_env_lines(values):
    """根据 {env_key: value} 生成 .env 文件内容行"""
    env_lines = [
        "# Dental Lab Manager 配置文件",
        "# 由 scripts/setup_env.py 自动生成",
    ]

    for key, _desc, default, _required in CONFIG_ITEMS:
        header = SECTION_NAMES.get(key.split("_")[0], "# === 其他配置 ===")
        # 避免重复写同一个 section header
        if header not in env_lines:
            env_lines.append("")
            env_lines.append(header)
        env_lines.append(f"{key}={values.get(key, default)}")

    return env_lines


def main():
    print()
    print("=" * 60)
    print("  Dental Lab Manager 配置向导")
    print("  生成 .env 配置文件")
    print("=" * 60)
    print()

    # 检查是否已存在 .env
    if os.path.exists(ENV_FILE):
        print(f"⚠️  检测到已有 .env 文件: {ENV_FILE}")
        choice = input("是否覆盖？(y/N): ").strip().lower()
        if choice != "y":
            print("已取消。")
            return
        print()

    # 收集配置
    values = {}
    for key, desc, default, required in CONFIG_ITEMS:
        req_tag = " [必填]" if required else ""
        default_hint = f" (默认: {default})" if default else ""
        print(f"📝 {desc}{req_tag}")

        while True:
            value = input(f"  {key}={default_hint}: ").strip()
            if not value:
                value = default
            if required and not value:
                print(f"  ❌ {key} 是必填项，请输入值。")
                continue
            break

        values[key] = value
        print()

    if values.get("BACKEND") == "rest" and not (values.get("BACKEND_URL") and values.get("BACKEND_API_KEY")):
        print("  ⚠️  rest 后端需要 BACKEND_URL 与 BACKEND_API_KEY，启动时会报配置错误。")
        print()

    # 写入文件
    env_content = "\n".join(build_env_lines(values)) + "\n"

    with open(ENV_FILE, "w", encoding="utf-8") as f:
        f.write(env_content)

    print("=" * 60)
    print(f"  ✅ 配置文件已生成: {ENV_FILE}")
    print()
    print("  初始化数据库：")
    print("    python scripts/init_db.py")
    print()
    print("  查看状态：")
    print("    python app.py status")
    print("=" * 60)


if __name__ == "__main__":
    main()
