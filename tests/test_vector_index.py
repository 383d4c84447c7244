import pytest

from errors import UpstreamFailure
from services.vector_index import RESUMES_NAMESPACE, FaissVectorIndex, VectorRecord


def _seed(index):
    index.upsert(
        RESUMES_NAMESPACE,
        [
            VectorRecord("res-1-0", [1.0, 0.0], {"resumeId": 1, "jobId": 10}),
            VectorRecord("res-1-1", [1.0, 1.0], {"resumeId": 1, "jobId": 10}),
            VectorRecord("res-2-0", [0.0, 1.0], {"resumeId": 2, "jobId": 10}),
            VectorRecord("res-3-0", [1.0, 0.0], {"resumeId": 3, "jobId": 20}),
        ],
    )


def test_query_returns_cosine_scores_in_order():
    index = FaissVectorIndex()
    _seed(index)

    matches = index.query(RESUMES_NAMESPACE, [2.0, 0.0], top_k=10, filter={"jobId": 10})

    assert [m.id for m in matches] == ["res-1-0", "res-1-1", "res-2-0"]
    assert matches[0].score == pytest.approx(1.0, abs=1e-5)
    assert matches[1].score == pytest.approx(0.70710678, abs=1e-5)
    assert matches[2].score == pytest.approx(0.0, abs=1e-5)
    assert matches[0].metadata == {"resumeId": 1, "jobId": 10}


def test_query_respects_top_k():
    index = FaissVectorIndex()
    _seed(index)
    assert len(index.query(RESUMES_NAMESPACE, [1.0, 0.0], top_k=2)) == 2


def test_query_on_empty_namespace():
    assert FaissVectorIndex().query(RESUMES_NAMESPACE, [1.0, 0.0], top_k=5) == []


def test_in_filter():
    index = FaissVectorIndex()
    _seed(index)
    matches = index.query(RESUMES_NAMESPACE, [1.0, 0.0], top_k=10, filter={"resumeId": {"$in": [2, 3]}})
    assert sorted(m.id for m in matches) == ["res-2-0", "res-3-0"]


def test_upsert_replaces_existing_id():
    index = FaissVectorIndex()
    _seed(index)
    index.upsert(RESUMES_NAMESPACE, [VectorRecord("res-2-0", [1.0, 0.0], {"resumeId": 2, "jobId": 10})])
    assert index.count(RESUMES_NAMESPACE) == 4
    assert index.fetch(RESUMES_NAMESPACE, ["res-2-0"]) == {"res-2-0": [1.0, 0.0]}


def test_delete_by_filter_and_ids():
    index = FaissVectorIndex()
    _seed(index)

    assert index.delete(RESUMES_NAMESPACE, filter={"resumeId": 1}) == 2
    assert index.delete(RESUMES_NAMESPACE, ids=["res-3-0", "missing"]) == 1
    assert index.count(RESUMES_NAMESPACE) == 1


def test_delete_requires_ids_or_filter():
    with pytest.raises(ValueError):
        FaissVectorIndex().delete(RESUMES_NAMESPACE)


def test_dimension_mismatch_is_rejected():
    index = FaissVectorIndex()
    _seed(index)
    with pytest.raises(UpstreamFailure):
        index.upsert(RESUMES_NAMESPACE, [VectorRecord("res-9-0", [1.0, 0.0, 0.0], {})])
    with pytest.raises(UpstreamFailure):
        index.query(RESUMES_NAMESPACE, [1.0, 0.0, 0.0], top_k=1)


def test_persisted_index_is_reloaded(tmp_path):
    index = FaissVectorIndex(str(tmp_path))
    _seed(index)
    index.delete(RESUMES_NAMESPACE, ids=["res-3-0"])

    reloaded = FaissVectorIndex(str(tmp_path))

    assert reloaded.count(RESUMES_NAMESPACE) == 3
    matches = reloaded.query(RESUMES_NAMESPACE, [1.0, 0.0], top_k=1, filter={"jobId": 10})
    assert matches[0].id == "res-1-0"
    assert matches[0].metadata == {"resumeId": 1, "jobId": 10}


def test_failed_save_keeps_previous_file(tmp_path, monkeypatch):
    index = FaissVectorIndex(str(tmp_path))
    _seed(index)

    def broken_savez(f, **arrays):
        f.write(b"partial")
        raise OSError("disk full")

    monkeypatch.setattr("services.vector_index.np.savez", broken_savez)
    with pytest.raises(OSError):
        index.upsert(RESUMES_NAMESPACE, [VectorRecord("res-9-0", [0.0, 1.0], {"resumeId": 9, "jobId": 10})])
    monkeypatch.undo()

    assert sorted(p.name for p in tmp_path.iterdir()) == ["resumes.npz"]
    assert FaissVectorIndex(str(tmp_path)).count(RESUMES_NAMESPACE) == 4
