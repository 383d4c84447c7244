# ------------------------------------------------------------
# DB接続の土台。engine / SessionLocal / Base / get_db を定義。
# DATABASE_URL があればそれを優先し、無ければ DB_USER などの分割値から
# MySQL 用 URL を組み立てる。どちらも無ければ SQLite にフォールバック。
# ------------------------------------------------------------
import os
from typing import Generator
from pathlib import Path
from urllib.parse import quote_plus

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


# 起動ディレクトリに依存しないよう、このファイルと同じ場所の .env を優先
_ENV_PATH = Path(__file__).resolve().parent / ".env"
if _ENV_PATH.exists():
    load_dotenv(_ENV_PATH)
else:
    load_dotenv()


def build_database_url() -> str:
    """
    環境変数から接続 URL を決める。
      1) DATABASE_URL（URL直書き）
      2) DB_USER / DB_PASSWORD / DB_HOST / DB_PORT / DB_NAME から MySQL URL
      3) ローカル SQLite（開発用）
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    user = os.getenv("DB_USER")
    password = os.getenv("DB_PASSWORD")
    host = os.getenv("DB_HOST") or "localhost"
    port = os.getenv("DB_PORT", "3306")
    name = os.getenv("DB_NAME")
    if user and password and name:
        # パスワードなどに記号がある場合に備えてエンコード
        return (
            f"mysql+pymysql://{quote_plus(user)}:{quote_plus(password)}"
            f"@{host}:{port}/{name}?charset=utf8mb4"
        )
    return "sqlite:///./app.db"


DATABASE_URL = build_database_url()

# 本番で SQLite を絶対に使いたくない場合は DISABLE_SQLITE=1
if os.getenv("DISABLE_SQLITE") == "1" and DATABASE_URL.startswith("sqlite"):
    raise RuntimeError(
        "SQLite fallback is disabled; set DATABASE_URL or DB_* to a server database."
    )


def _is_mysql(url: str) -> bool:
    return url.split(":", 1)[0].startswith("mysql")


def make_engine(url: str, **kwargs) -> Engine:
    """
    DBごとに微調整した engine を返す。
    - SQLite: check_same_thread=False と外部キー有効化（カスケード削除のため）
    - MySQL: SSL を有効化（DB_SSL_CA があれば CA 検証）
    """
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {"check_same_thread": False})
        engine = create_engine(url, connect_args=connect_args, future=True, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_sqlite_fk(dbapi_connection, connection_record):
            cur = dbapi_connection.cursor()
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.close()

        return engine

    connect_args = {}
    if _is_mysql(url):
        import ssl

        import certifi

        ca = os.getenv("DB_SSL_CA")
        if ca and Path(ca).exists():
            ctx = ssl.create_default_context(cafile=str(Path(ca).resolve()))
        else:
            ctx = ssl.create_default_context(cafile=certifi.where())
        connect_args = {"ssl": ctx}

    return create_engine(
        url,
        pool_pre_ping=True,   # 接続死活監視
        pool_recycle=1800,    # 長時間アイドルで切られる対策（秒）
        future=True,
        connect_args=connect_args,
        **kwargs,
    )


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


class Base(DeclarativeBase):
    """全 ORM モデルの基底クラス。"""


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI の Depends で使うDBセッション。
    1リクエスト = 1セッション。使用後は必ず close() される。
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
