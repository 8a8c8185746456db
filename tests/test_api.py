"""HTTP-level checks for the submission, review and ops routers."""

from __future__ import annotations

from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr

from conftest import FakeLanguageModel, FakeMediaStore, FakeTranscriber, RecordingDispatcher
from oralassess.config.dependencies import (
    get_audit_log,
    get_dispatcher,
    get_media_store,
    get_response_processor,
    get_scoring_dispatcher,
)
from oralassess.config.settings import settings
from oralassess.database import get_session
from oralassess.main import app
from oralassess.pipelines.response import ResponseProcessor
from oralassess.services.audit import AuditLog
from oralassess.services.scoring import ScoringDispatcher
from oralassess.utils import create_access_token


@dataclass
class ApiHarness:
    client: TestClient
    dispatcher: RecordingDispatcher
    media_store: FakeMediaStore


def _auth(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user.id), user)}"}


@pytest.fixture
def api(session_factory, seed) -> ApiHarness:
    """Bind the app to the per-test database and in-memory collaborators."""

    media_store = FakeMediaStore()
    dispatcher = RecordingDispatcher()
    model = FakeLanguageModel()
    processor = ResponseProcessor(session_factory, media_store, FakeTranscriber(), model)
    scorer = ScoringDispatcher(session_factory, model, response_wait_seconds=0)

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_media_store] = lambda: media_store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_response_processor] = lambda: processor
    app.dependency_overrides[get_scoring_dispatcher] = lambda: scorer
    app.dependency_overrides[get_audit_log] = lambda: AuditLog(session_factory)

    yield ApiHarness(client=TestClient(app), dispatcher=dispatcher, media_store=media_store)

    app.dependency_overrides.clear()


def test_student_flow_from_begin_to_submit(api, seed):
    headers = _auth(seed.student)

    begun = api.client.post(
        "/student/submissions",
        json={"assessmentId": str(seed.assessment_id)},
        headers=headers,
    )
    assert begun.status_code == 201
    body = begun.json()
    assert body["reused"] is False
    assert body["pledgeEnabled"] is True
    assert body["pledgeVersion"] == 2
    submission_id = body["submission"]["id"]

    pledged = api.client.post(
        f"/student/submissions/{submission_id}/pledge",
        headers={**headers, "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
    )
    assert pledged.status_code == 200
    assert pledged.json()["newlyAccepted"] is True
    assert pledged.json()["submission"]["pledgeVersion"] == 2

    uploaded = api.client.post(
        f"/student/submissions/{submission_id}/responses",
        data={"questionId": str(seed.question_ids[0]), "durationSeconds": "9.5"},
        files={"audio_file": ("answer.webm", b"opus-bytes", "audio/webm")},
        headers=headers,
    )
    assert uploaded.status_code == 202
    response_body = uploaded.json()
    assert response_body["processingStatus"] == "queued"
    assert response_body["audioUrl"].startswith("https://media.test/")
    assert api.dispatcher.names == [f"process-response:{response_body['id']}"]

    listed = api.client.get(f"/student/submissions/{submission_id}/responses", headers=headers)
    assert listed.status_code == 200
    assert [item["id"] for item in listed.json()] == [response_body["id"]]

    submitted = api.client.post(f"/student/submissions/{submission_id}/submit", headers=headers)
    assert submitted.status_code == 202
    assert submitted.json()["status"] == "submitted"
    assert api.dispatcher.names[-1] == f"score:{submission_id}"

    again = api.client.post(f"/student/submissions/{submission_id}/submit", headers=headers)
    assert again.status_code == 409
    assert again.json()["code"] == "already_submitted"


def test_recording_before_pledge_is_rejected(api, seed):
    headers = _auth(seed.student)
    submission_id = api.client.post(
        "/student/submissions",
        json={"assessmentId": str(seed.assessment_id)},
        headers=headers,
    ).json()["submission"]["id"]

    rejected = api.client.post(
        f"/student/submissions/{submission_id}/responses",
        data={"questionId": str(seed.question_ids[0])},
        files={"audio_file": ("answer.webm", b"opus-bytes", "audio/webm")},
        headers=headers,
    )

    assert rejected.status_code == 409
    assert rejected.json()["code"] == "pledge_required"
    assert api.media_store.objects == {}


def test_feedback_is_hidden_before_release(api, seed):
    headers = _auth(seed.student)
    submission_id = api.client.post(
        "/student/submissions",
        json={"assessmentId": str(seed.assessment_id)},
        headers=headers,
    ).json()["submission"]["id"]

    response = api.client.get(f"/student/submissions/{submission_id}/feedback", headers=headers)

    assert response.status_code == 404
    assert response.json()["code"] == "feedback_not_published"


def test_authentication_and_roles(api, seed):
    payload = {"assessmentId": str(seed.assessment_id)}

    anonymous = api.client.post("/student/submissions", json=payload)
    assert anonymous.status_code == 401

    garbage = api.client.post(
        "/student/submissions", json=payload, headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert garbage.status_code == 401

    teacher = api.client.post("/student/submissions", json=payload, headers=_auth(seed.teacher))
    assert teacher.status_code == 403

    student_on_ops = api.client.get("/ops/scoring/errors", headers=_auth(seed.student))
    assert student_on_ops.status_code == 403


def test_teacher_support_queues_are_empty_by_default(api, seed):
    response = api.client.get("/ops/scoring/errors", headers=_auth(seed.teacher))

    assert response.status_code == 200
    assert response.json() == []


def test_scheduled_scoring_requires_configured_secret(api, monkeypatch):
    monkeypatch.setattr(settings.scoring, "cron_secret", None)
    assert api.client.post("/ops/scoring/run").status_code == 503

    monkeypatch.setattr(settings.scoring, "cron_secret", SecretStr("s3cret"))
    wrong = api.client.post("/ops/scoring/run", headers={"X-Cron-Secret": "nope"})
    assert wrong.status_code == 401

    accepted = api.client.post("/ops/scoring/run?limit=3", headers={"X-Cron-Secret": "s3cret"})
    assert accepted.status_code == 200
    assert accepted.json() == {"processed": 0, "results": []}


def test_health_endpoint(api):
    response = api.client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_integrity_signals_roll_up_for_the_teacher(api, seed):
    headers = _auth(seed.student)
    submission_id = api.client.post(
        "/student/submissions",
        json={"assessmentId": str(seed.assessment_id)},
        headers=headers,
    ).json()["submission"]["id"]

    reported = api.client.post(
        f"/student/submissions/{submission_id}/integrity",
        json={"eventType": "screenshot_attempt", "metadata": {"key": "PrintScreen"}},
        headers=headers,
    )
    assert reported.status_code == 201
    assert reported.json()["eventType"] == "screenshot_attempt"

    invalid = api.client.post(
        f"/student/submissions/{submission_id}/integrity",
        json={"eventType": "copy_paste"},
        headers=headers,
    )
    assert invalid.status_code == 422

    negative = api.client.post(
        f"/student/submissions/{submission_id}/integrity",
        json={"eventType": "tab_switch", "durationMs": -5},
        headers=headers,
    )
    assert negative.status_code == 422

    summary = api.client.get(
        f"/assessments/{seed.assessment_id}/integrity", headers=_auth(seed.teacher)
    )
    assert summary.status_code == 200
    (item,) = summary.json()
    assert item["submissionId"] == submission_id
    assert item["screenshotAttempt"] == 1
    assert item["flagCount"] == 1

    assert (
        api.client.get(
            f"/assessments/{seed.assessment_id}/integrity", headers=_auth(seed.student)
        ).status_code
        == 403
    )
