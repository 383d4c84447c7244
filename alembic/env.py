from __future__ import annotations

import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context

# ============================================================
# 1) アプリへのパスを通す（このファイル: <root>/alembic/env.py）
# ============================================================
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# database.py が .env を読み、DATABASE_URL を組み立てる
from database import DATABASE_URL, Base, make_engine  # noqa: E402
import models  # noqa: E402,F401  全モデルを metadata に登録

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


# ============================================================
# オフラインモード（接続せずに SQL を生成）
# ============================================================
def run_migrations_offline() -> None:
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
        render_as_batch=DATABASE_URL.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


# ============================================================
# オンラインモード（DBに接続して適用）
# SSL や SQLite の外部キー設定はアプリと同じ make_engine に任せる
# ============================================================
def run_migrations_online() -> None:
    engine = make_engine(DATABASE_URL)

    with engine.begin() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
