"""HTTP tests for next steps and field comments, including locked-period rejection."""

from datetime import date, timedelta

import pytest

from monthly_updates.core.exceptions import LockedStateViolation
from monthly_updates.models import db
from monthly_updates.models.comment import Comment
from monthly_updates.models.next_step import NextStep
from monthly_updates.services import comment_service, next_step_service, period_service

STEPS = "/api/v1/next-steps"
COMMENTS = "/api/v1/comments"


@pytest.fixture()
def project(make_project):
    return make_project("Benefit Tracker")


def _step_payload(project, period, **overrides):
    payload = {
        "projectId": project.id,
        "periodId": period.id,
        "description": "Finalise evaluation plan",
        "owner": "J. Martin",
        "dueDate": "2025-08-10",
    }
    payload.update(overrides)
    return payload


def _comment_payload(project, period, **overrides):
    payload = {
        "projectId": project.id,
        "periodId": period.id,
        "fieldReference": "benefits.fteSavings.details",
        "authorName": "Reviewer",
        "content": "Is this annualised?",
    }
    payload.update(overrides)
    return payload


# ═════════════════════════════════════════════════════════════════════════════
# Next steps
# ═════════════════════════════════════════════════════════════════════════════


class TestNextSteps:
    def test_create_list_update_delete(self, client, active_period, project):
        created = client.post(STEPS, json=_step_payload(project, active_period))
        assert created.status_code == 201
        step = created.get_json()
        assert step["status"] == "not-started"
        assert step["dueDate"] == "2025-08-10"

        listed = client.get(f"{STEPS}?projectId={project.id}&periodId={active_period.id}").get_json()
        assert listed["count"] == 1

        updated = client.put(f"{STEPS}/{step['id']}", json={"status": "in-progress"})
        assert updated.status_code == 200
        assert updated.get_json()["status"] == "in-progress"

        deleted = client.delete(f"{STEPS}/{step['id']}")
        assert deleted.status_code == 204
        assert NextStep.query.count() == 0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"description": "  "},
            {"owner": None},
            {"status": "done"},
            {"dueDate": "end of month"},
            {"projectId": None},
            {"periodId": "abc"},
        ],
    )
    def test_create_validation(self, client, active_period, project, overrides):
        res = client.post(STEPS, json=_step_payload(project, active_period, **overrides))

        assert res.status_code == 400

    def test_update_requires_a_field(self, client, active_period, project):
        step = client.post(STEPS, json=_step_payload(project, active_period)).get_json()

        res = client.put(f"{STEPS}/{step['id']}", json={})

        assert res.status_code == 400

    def test_locked_period_rejects_writes(self, client, active_period, project):
        step = client.post(STEPS, json=_step_payload(project, active_period)).get_json()
        period_service.lock_period(active_period.id)

        create = client.post(STEPS, json=_step_payload(project, active_period))
        update = client.put(f"{STEPS}/{step['id']}", json={"status": "completed"})
        delete = client.delete(f"{STEPS}/{step['id']}")

        assert [r.status_code for r in (create, update, delete)] == [423, 423, 423]
        assert db.session.get(NextStep, step["id"]).status == "not-started"

    def test_lock_between_check_and_commit_rolls_back(self, client, active_period, project, monkeypatch):
        step = client.post(STEPS, json=_step_payload(project, active_period)).get_json()
        period_service.lock_period(active_period.id)
        monkeypatch.setattr(next_step_service, "_require_open_period", lambda period_id: None)

        with pytest.raises(LockedStateViolation):
            next_step_service.update_next_step(step["id"], {"status": "completed"})

        assert not db.session.dirty
        assert db.session.get(NextStep, step["id"]).status == "not-started"

    def test_summary(self, client, active_period, project):
        today = date.today()
        client.post(STEPS, json=_step_payload(
            project, active_period, dueDate=(today - timedelta(days=2)).isoformat(),
        ))
        client.post(STEPS, json=_step_payload(
            project, active_period, dueDate=(today + timedelta(days=3)).isoformat(),
            status="ongoing",
        ))
        client.post(STEPS, json=_step_payload(
            project, active_period, dueDate=(today - timedelta(days=9)).isoformat(),
            status="completed",
        ))

        summary = client.get(f"{STEPS}/summary?projectId={project.id}").get_json()

        assert summary["total"] == 3
        assert summary["not-started"] == 1
        assert summary["ongoing"] == 1
        assert summary["completed"] == 1
        assert summary["overdue"] == 1
        assert summary["dueSoon"] == 1

    def test_unknown_step_is_404(self, client):
        assert client.put(f"{STEPS}/42", json={"status": "blocked"}).status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════


class TestComments:
    def test_thread_with_reply(self, client, active_period, project):
        top = client.post(COMMENTS, json=_comment_payload(project, active_period)).get_json()
        reply = client.post(
            f"{COMMENTS}/{top['id']}/reply",
            json={"authorName": "Owner", "content": "Yes, per year."},
        )

        assert reply.status_code == 201
        assert reply.get_json()["parentCommentId"] == top["id"]
        assert reply.get_json()["fieldReference"] == "benefits.fteSavings.details"

        body = client.get(
            f"{COMMENTS}/field/{project.id}/{active_period.id}/benefits.fteSavings.details",
        ).get_json()
        assert body["count"] == 1
        assert [r["content"] for r in body["comments"][0]["replies"]] == ["Yes, per year."]

    def test_reply_to_reply_is_rejected(self, client, active_period, project):
        top = client.post(COMMENTS, json=_comment_payload(project, active_period)).get_json()
        reply = client.post(
            f"{COMMENTS}/{top['id']}/reply", json={"authorName": "A", "content": "B"},
        ).get_json()

        res = client.post(
            f"{COMMENTS}/{reply['id']}/reply", json={"authorName": "C", "content": "D"},
        )

        assert res.status_code == 400
        assert res.get_json()["details"] == {"parentCommentId": "nested reply"}

    def test_parent_must_match_field(self, client, active_period, project):
        top = client.post(COMMENTS, json=_comment_payload(project, active_period)).get_json()

        res = client.post(COMMENTS, json=_comment_payload(
            project, active_period, fieldReference="keyRisks", parentCommentId=top["id"],
        ))

        assert res.status_code == 400

    def test_resolve_and_reopen(self, client, active_period, project):
        top = client.post(COMMENTS, json=_comment_payload(project, active_period)).get_json()

        resolved = client.put(
            f"{COMMENTS}/{top['id']}", json={"isResolved": True}, headers={"X-Actor": "lead"},
        ).get_json()
        assert resolved["isResolved"] is True
        assert resolved["resolvedBy"] == "lead"
        assert resolved["resolvedAt"] is not None

        reopened = client.put(f"{COMMENTS}/{top['id']}", json={"isResolved": False}).get_json()
        assert reopened["isResolved"] is False
        assert reopened["resolvedBy"] is None

    def test_is_resolved_must_be_boolean(self, client, active_period, project):
        top = client.post(COMMENTS, json=_comment_payload(project, active_period)).get_json()

        res = client.put(f"{COMMENTS}/{top['id']}", json={"isResolved": "yes"})

        assert res.status_code == 400

    def test_listing_summary_and_unresolved(self, client, active_period, project):
        first = client.post(COMMENTS, json=_comment_payload(project, active_period)).get_json()
        client.post(COMMENTS, json=_comment_payload(project, active_period, fieldReference="keyRisks"))
        client.put(f"{COMMENTS}/{first['id']}", json={"isResolved": True})

        by_project = client.get(
            f"{COMMENTS}/project/{project.id}?periodId={active_period.id}",
        ).get_json()
        summary = client.get(f"{COMMENTS}/summary/{project.id}/{active_period.id}").get_json()
        unresolved = client.get(f"{COMMENTS}/unresolved?projectId={project.id}").get_json()

        assert by_project["count"] == 2
        assert by_project["periodId"] == active_period.id
        assert summary == {
            "benefits.fteSavings.details": {"total": 1, "resolved": 1, "unresolved": 0},
            "keyRisks": {"total": 1, "resolved": 0, "unresolved": 1},
        }
        assert [c["fieldReference"] for c in unresolved["comments"]] == ["keyRisks"]

    def test_delete_removes_thread(self, client, active_period, project):
        top = client.post(COMMENTS, json=_comment_payload(project, active_period)).get_json()
        client.post(f"{COMMENTS}/{top['id']}/reply", json={"authorName": "A", "content": "B"})

        res = client.delete(f"{COMMENTS}/{top['id']}")

        assert res.status_code == 204
        assert Comment.query.count() == 0

    def test_locked_period_rejects_writes(self, client, active_period, project):
        top = client.post(COMMENTS, json=_comment_payload(project, active_period)).get_json()
        period_service.lock_period(active_period.id)

        create = client.post(COMMENTS, json=_comment_payload(project, active_period))
        reply = client.post(f"{COMMENTS}/{top['id']}/reply", json={"authorName": "A", "content": "B"})
        update = client.put(f"{COMMENTS}/{top['id']}", json={"isResolved": True})
        delete = client.delete(f"{COMMENTS}/{top['id']}")

        assert [r.status_code for r in (create, reply, update, delete)] == [423, 423, 423, 423]
        assert create.get_json()["error"] == "Cannot add comments in a locked reporting period"
        assert Comment.query.count() == 1

    def test_lock_between_check_and_commit_rolls_back(self, client, active_period, project, monkeypatch):
        top = client.post(COMMENTS, json=_comment_payload(project, active_period)).get_json()
        period_service.lock_period(active_period.id)
        monkeypatch.setattr(comment_service, "_require_open_period", lambda period_id, verb: None)

        with pytest.raises(LockedStateViolation):
            comment_service.update_comment(top["id"], {"content": "Edited after lock"})

        assert not db.session.dirty
        assert db.session.get(Comment, top["id"]).content == "Is this annualised?"

    @pytest.mark.parametrize("missing", ["fieldReference", "authorName", "content"])
    def test_create_requires_fields(self, client, active_period, project, missing):
        payload = _comment_payload(project, active_period)
        payload.pop(missing)

        res = client.post(COMMENTS, json=payload)

        assert res.status_code == 400
        assert missing in res.get_json()["details"]
