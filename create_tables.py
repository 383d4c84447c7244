# モデルをすべてインポートして Base.metadata.create_all するだけ
# （本番は alembic upgrade head を使う。ローカルの SQLite 用）
import logging

from database import DATABASE_URL, Base, engine
import models  # noqa: F401  全モデルを metadata に登録

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info("Creating tables in %s ...", DATABASE_URL.split("@")[-1])
    Base.metadata.create_all(bind=engine)
    logger.info("Done.")
