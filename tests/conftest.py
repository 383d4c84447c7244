import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db, make_engine
import models  # noqa: F401
from main import app
from services.chunking import TokenChunker, get_chunker
from services.embeddings import get_embedder
from services.llm import get_llm
from services.vector_index import FaissVectorIndex, get_vector_index

from fakes import CharEncoding, HashingEmbedder, ScriptedLLM


# Fixtures
@pytest.fixture
def engine():
    """テストごとに空のインメモリ SQLite（外部キー有効）。"""
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def index():
    return FaissVectorIndex()


@pytest.fixture
def chunker():
    # 小さい窓にして短い履歴書でも複数チャンクになるようにする
    return TokenChunker(encoding=CharEncoding(), window=40, overlap=5)


@pytest.fixture
def client(session_factory, embedder, llm, index, chunker):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_embedder] = lambda: embedder
    app.dependency_overrides[get_llm] = lambda: llm
    app.dependency_overrides[get_vector_index] = lambda: index
    app.dependency_overrides[get_chunker] = lambda: chunker
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
