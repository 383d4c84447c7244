from services.vector_index import JOBS_NAMESPACE, RESUMES_NAMESPACE

JD = "Backend engineer: Python, FastAPI, SQL, Docker and AWS experience required."
RESUMES = {
    "Alice": "Alice. Python and FastAPI developer. Built SQL reporting on AWS with Docker.",
    "Bob": "Bob. Frontend developer using React and TypeScript. Some Figma design work.",
}


def _create_job(client, title="Backend Engineer", jd=JD):
    res = client.post("/jobs", json={"title": title, "jdText": jd})
    assert res.status_code == 200, res.text
    return res.json()["id"]


def _upload(client, job_id, name, text):
    res = client.post(f"/jobs/{job_id}/resumes", json={"candidateName": name, "fullText": text})
    assert res.status_code == 200, res.text
    return res.json()["id"]


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_full_matching_flow(client, llm, index):
    job_id = _create_job(client)
    ids = {name: _upload(client, job_id, name, text) for name, text in RESUMES.items()}
    assert index.count(JOBS_NAMESPACE) == 1
    assert index.count(RESUMES_NAMESPACE) >= 2

    first = client.post(f"/jobs/{job_id}/match", json={"userId": "u-1", "topK": 10})
    assert first.status_code == 200, first.text
    body = first.json()
    assert {r["resume_id"] for r in body} == set(ids.values())
    assert all(r["status"] == "enriched" for r in body)
    sims = [r["similarity"] for r in body]
    assert sims == sorted(sims, reverse=True)
    assert llm.calls == 2

    again = client.post(f"/jobs/{job_id}/match", json={"userId": "u-1", "topK": 10}).json()
    assert all(r["status"] == "reused" for r in again)
    assert llm.calls == 2

    page = client.get(f"/jobs/{job_id}/comparisons").json()
    assert page["pagination"]["total_items"] == 2
    assert page["analytics"]["total"] == 2
    assert page["analytics"]["good"] == 2  # fit_score 0.72

    history = client.get("/history", headers={"x-user-id": "u-1"}).json()
    assert len(history) == 2
    assert {h["job"] for h in history} == {"Backend Engineer"}

    deleted = client.delete(f"/jobs/{job_id}").json()
    assert deleted["success"] is True
    assert deleted["deleted_resumes"] == 2
    assert deleted["deleted_comparisons"] == 2
    assert index.count(JOBS_NAMESPACE) == 0
    assert index.count(RESUMES_NAMESPACE) == 0

    gone = client.get(f"/jobs/{job_id}")
    assert gone.status_code == 404
    assert gone.json()["error"] == "job_not_found"
    assert client.get("/history", headers={"x-user-id": "u-1"}).json() == []


def test_job_crud(client):
    job_id = _create_job(client, title="Data Engineer", jd="Spark and Airflow")
    assert [j["id"] for j in client.get("/jobs").json()] == [job_id]

    res = client.patch(f"/jobs/{job_id}", json={"title": "Senior Data Engineer"})
    assert res.status_code == 200
    assert res.json()["title"] == "Senior Data Engineer"
    assert res.json()["jd_text"] == "Spark and Airflow"


def test_blank_fields_are_rejected_before_embedding(client, embedder):
    res = client.post("/jobs", json={"title": "  ", "jdText": JD})
    assert res.status_code == 400
    assert res.json()["error"] == "validation_error"

    res = client.post("/jobs", json={"title": "Backend"})
    assert res.status_code == 400
    assert embedder.calls == []


def test_embedding_failure_creates_nothing(client, embedder):
    embedder.fail = True
    res = client.post("/jobs", json={"title": "Backend", "jdText": JD})
    assert res.status_code == 502
    assert res.json()["error"] == "upstream_failure"
    assert client.get("/jobs").json() == []


def test_resume_for_unknown_job(client):
    res = client.post("/jobs/999/resumes", json={"candidateName": "Ann", "fullText": "Python"})
    assert res.status_code == 404
    assert res.json()["error"] == "job_not_found"


def test_match_errors(client):
    assert client.post("/jobs/999/match", json={"userId": "u"}).json()["error"] == "job_not_found"

    job_id = _create_job(client)
    res = client.post(f"/jobs/{job_id}/match", json={"userId": "u"})
    assert res.status_code == 404
    assert res.json()["error"] == "no_resumes"

    _upload(client, job_id, "Alice", RESUMES["Alice"])
    res = client.post(f"/jobs/{job_id}/match", json={"topK": 5})
    assert res.status_code == 400
    assert res.json()["error"] == "validation_error"


def test_degraded_results_are_returned(client, llm):
    job_id = _create_job(client)
    _upload(client, job_id, "Alice", RESUMES["Alice"])
    llm.responses.append("```json\n{\"matching_skills\": oops```")

    body = client.post(f"/jobs/{job_id}/match", json={"userId": "u"}).json()

    assert body[0]["status"] == "degraded"
    assert body[0]["fit_score"] == body[0]["similarity"]
    assert client.get(f"/jobs/{job_id}/comparisons").json()["data"] == []


def test_resume_listing_status(client):
    job_id = _create_job(client)
    for name, text in RESUMES.items():
        _upload(client, job_id, name, text)

    unmatched = client.get(f"/jobs/{job_id}/resumes", params={"status": "unmatched"}).json()
    assert unmatched["pagination"]["total_items"] == 2

    client.post(f"/jobs/{job_id}/match", json={"userId": "u"})

    listing = client.get(f"/jobs/{job_id}/resumes", params={"sortBy": "candidate", "sortOrder": "asc"}).json()
    assert [r["candidate"] for r in listing["data"]] == ["Alice", "Bob"]
    assert all(r["is_matched"] for r in listing["data"])
    assert listing["data"][0]["match_result"]["grade"] == "Good"

    res = client.get(f"/jobs/{job_id}/resumes", params={"sortBy": "salary"})
    assert res.status_code == 400


def test_delete_single_resume(client, index):
    job_id = _create_job(client)
    alice = _upload(client, job_id, "Alice", RESUMES["Alice"])
    bob = _upload(client, job_id, "Bob", RESUMES["Bob"])
    client.post(f"/jobs/{job_id}/match", json={"userId": "u"})

    res = client.delete(f"/jobs/{job_id}/resumes/{alice}")
    assert res.status_code == 200
    assert res.json()["deleted_resume"] == {"id": alice, "candidate_name": "Alice"}
    assert res.json()["deleted_comparisons"] == 1
    remaining = index.query(RESUMES_NAMESPACE, [1.0] * 64, top_k=100)
    assert {m.metadata["resumeId"] for m in remaining} == {bob}

    again = client.delete(f"/jobs/{job_id}/resumes/{alice}")
    assert again.status_code == 404
    assert again.json()["error"] == "resume_not_found"


def test_resume_of_another_job_cannot_be_deleted(client):
    job_a = _create_job(client, title="A")
    job_b = _create_job(client, title="B")
    resume = _upload(client, job_a, "Alice", RESUMES["Alice"])

    res = client.delete(f"/jobs/{job_b}/resumes/{resume}")
    assert res.status_code == 404


def test_bulk_delete(client, index):
    job_id = _create_job(client)
    ids = [_upload(client, job_id, f"Cand {i}", RESUMES["Alice"]) for i in range(3)]

    res = client.request("DELETE", f"/jobs/{job_id}/resumes/bulk-delete", json={})
    assert res.status_code == 400

    res = client.request("DELETE", f"/jobs/{job_id}/resumes/bulk-delete", json={"resumeIds": [ids[0]]})
    assert res.status_code == 200, res.text
    assert res.json()["total_deleted"] == 1
    left = {m.metadata["resumeId"] for m in index.query(RESUMES_NAMESPACE, [1.0] * 64, top_k=100)}
    assert left == set(ids[1:])

    res = client.request("DELETE", f"/jobs/{job_id}/resumes/bulk-delete", json={"deleteAll": True}).json()
    assert res["total_deleted"] == 2
    assert index.count(RESUMES_NAMESPACE) == 0

    res = client.request("DELETE", f"/jobs/{job_id}/resumes/bulk-delete", json={"deleteAll": True}).json()
    assert res["message"] == "No resumes to delete"
    assert res["total_deleted"] == 0


def test_export_csv(client):
    job_id = _create_job(client)
    for name, text in RESUMES.items():
        _upload(client, job_id, name, text)
    client.post(f"/jobs/{job_id}/match", json={"userId": "u"})

    res = client.get(f"/jobs/{job_id}/comparisons/export")

    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert "Backend Engineer-analysis.csv" in res.headers["content-disposition"]
    lines = res.text.strip().splitlines()
    assert lines[0].startswith("Rank,Candidate,Fit Score (%)")
    assert len(lines) == 3
    assert ",72.0," in lines[1]


def test_history_requires_user_header(client):
    res = client.get("/history")
    assert res.status_code == 400
    assert res.json()["error"] == "validation_error"


def test_deleting_a_job_leaves_other_jobs_intact(client, index):
    job_a = _create_job(client, title="Job A")
    job_b = _create_job(client, title="Job B")
    _upload(client, job_a, "Alice", RESUMES["Alice"])
    bob = _upload(client, job_b, "Bob", RESUMES["Bob"])
    for job_id in (job_a, job_b):
        assert client.post(f"/jobs/{job_id}/match", json={"userId": "u-1"}).status_code == 200

    assert client.delete(f"/jobs/{job_a}").json()["deleted_comparisons"] == 1

    page = client.get(f"/jobs/{job_b}/comparisons").json()
    assert page["pagination"]["total_items"] == 1
    assert page["data"][0]["resume_id"] == bob
    remaining = {m.metadata["jobId"] for m in index.query(RESUMES_NAMESPACE, [1.0] * 64, top_k=100)}
    assert remaining == {job_b}

    res = client.post(f"/jobs/{job_a}/match", json={"userId": "u-1"})
    assert res.status_code == 404
    assert res.json()["error"] == "job_not_found"
    assert [h["job_id"] for h in client.get("/history", headers={"x-user-id": "u-1"}).json()] == [job_b]
