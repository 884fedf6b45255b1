import pytest

from journalflow.core.errors import (
    AlreadyAssigned,
    AlreadyCompleted,
    AlreadyReviewed,
    Forbidden,
    InvalidRole,
    InvalidSubmissionState,
    NotFound,
    ValidationError,
)


def _status(workflow, submission_id):
    return workflow.repository.get_submission(submission_id)["status"]


# === assign_reviewer ===


def test_first_assignment_moves_submission_under_review(workflow, actors, ids, submission, sink):
    review = workflow.reviews.assign_reviewer(submission.id, ids.reviewer_a, actors["editor"])

    assert review.reviewer_id == ids.reviewer_a
    assert review.assigned_by == ids.editor
    assert review.assigned_at is not None
    assert review.submitted_at is None
    assert review.recommendation is None
    assert _status(workflow, submission.id) == "under_review"

    assigned = sink.events("assigned")
    assert [(r, p["submission_id"]) for _, r, p in assigned] == [(ids.reviewer_a, submission.id)]
    changes = sink.events("status_changed")
    assert len(changes) == 1
    assert changes[0][1] == ids.author
    assert changes[0][2]["to_status"] == "under_review"


def test_second_assignment_does_not_transition_again(workflow, actors, ids, submission, sink):
    workflow.reviews.assign_reviewer(submission.id, ids.reviewer_a, actors["editor"])
    workflow.reviews.assign_reviewer(submission.id, ids.reviewer_b, actors["admin"])

    assert _status(workflow, submission.id) == "under_review"
    assert len(sink.events("status_changed")) == 1
    assert len(sink.events("assigned")) == 2


def test_editor_may_be_assigned_as_reviewer(workflow, actors, ids, submission):
    review = workflow.reviews.assign_reviewer(submission.id, ids.editor, actors["admin"])
    assert review.reviewer_id == ids.editor


def test_duplicate_assignment_rejected(workflow, actors, ids, submission):
    workflow.reviews.assign_reviewer(submission.id, ids.reviewer_a, actors["editor"])

    with pytest.raises(AlreadyAssigned) as exc:
        workflow.reviews.assign_reviewer(submission.id, ids.reviewer_a, actors["admin"])

    assert exc.value.status_code == 409
    assert exc.value.precondition == "uniqueness"
    assert len(workflow.repository.list_reviews(submission.id)) == 1


@pytest.mark.parametrize("role", ["author", "reviewer_a"])
def test_assign_requires_editorial_role(workflow, actors, ids, submission, role):
    with pytest.raises(Forbidden):
        workflow.reviews.assign_reviewer(submission.id, ids.reviewer_b, actors[role])
    assert workflow.repository.list_reviews(submission.id) == []
    assert _status(workflow, submission.id) == "submitted"


def test_assign_unknown_reviewer(workflow, actors, submission):
    with pytest.raises(NotFound, match="Reviewer not found"):
        workflow.reviews.assign_reviewer(submission.id, "ghost", actors["editor"])


def test_assign_empty_reviewer_id(workflow, actors, submission):
    with pytest.raises(ValidationError):
        workflow.reviews.assign_reviewer(submission.id, "  ", actors["editor"])


def test_assign_missing_submission(workflow, actors, ids):
    with pytest.raises(NotFound):
        workflow.reviews.assign_reviewer("missing", ids.reviewer_a, actors["editor"])


def test_assign_author_role_is_invalid_role(workflow, actors, ids, submission):
    with pytest.raises(InvalidRole) as exc:
        workflow.reviews.assign_reviewer(submission.id, ids.other_author, actors["editor"])
    assert exc.value.status_code == 422


def test_assign_submission_author_forbidden(workflow, actors, ids, submission_fields):
    # admin 既可投稿也可审稿，但不能审自己的稿件
    sub = workflow.submissions.create_submission(actors["admin"], **submission_fields())
    with pytest.raises(Forbidden) as exc:
        workflow.reviews.assign_reviewer(sub.id, ids.admin, actors["editor"])
    assert exc.value.precondition == "ownership"


@pytest.mark.parametrize("status", ["accepted", "rejected"])
def test_assign_to_terminal_submission(workflow, actors, ids, submission, force_status, status):
    force_status(submission.id, status)
    with pytest.raises(InvalidSubmissionState):
        workflow.reviews.assign_reviewer(submission.id, ids.reviewer_a, actors["editor"])


def test_assign_during_revisions_keeps_status(workflow, actors, ids, submission, force_status):
    force_status(submission.id, "revisions_required")
    workflow.reviews.assign_reviewer(submission.id, ids.reviewer_a, actors["editor"])
    assert _status(workflow, submission.id) == "revisions_required"


# === submit_review (assigned) ===


def test_complete_assigned_review(workflow, actors, ids, submission, sink):
    assigned = workflow.reviews.assign_reviewer(submission.id, ids.reviewer_a, actors["editor"])

    review = workflow.reviews.submit_review(
        submission.id, ids.reviewer_a, "  Convincing methods. ", "MINOR_REVISIONS", actors["reviewer_a"]
    )

    assert review.id == assigned.id
    assert review.comments == "Convincing methods."
    assert review.recommendation == "minor_revisions"
    assert review.submitted_at is not None
    assert len(workflow.repository.list_reviews(submission.id)) == 1

    recipients = {r for _, r, _ in sink.events("completed")}
    assert recipients == {ids.author, ids.editor}


def test_completed_review_is_write_once(workflow, actors, ids, submission):
    workflow.reviews.assign_reviewer(submission.id, ids.reviewer_a, actors["editor"])
    workflow.reviews.submit_review(submission.id, ids.reviewer_a, "first", "accept", actors["reviewer_a"])

    with pytest.raises(AlreadyCompleted):
        workflow.reviews.submit_review(submission.id, ids.reviewer_a, "second", "reject", actors["reviewer_a"])

    stored = workflow.repository.get_review_for(submission.id, ids.reviewer_a)
    assert stored["comments"] == "first"
    assert stored["recommendation"] == "accept"


def test_assigned_review_completes_after_editor_decision(workflow, actors, ids, submission):
    workflow.reviews.assign_reviewer(submission.id, ids.reviewer_a, actors["editor"])
    workflow.submissions.update_status(submission.id, "rejected", actors["editor"])

    review = workflow.reviews.submit_review(submission.id, ids.reviewer_a, "late", "reject", actors["reviewer_a"])
    assert review.submitted_at is not None


def test_submit_review_on_behalf_of_someone_else(workflow, actors, ids, submission):
    workflow.reviews.assign_reviewer(submission.id, ids.reviewer_a, actors["editor"])
    with pytest.raises(Forbidden):
        workflow.reviews.submit_review(submission.id, ids.reviewer_a, "x", "accept", actors["reviewer_b"])


@pytest.mark.parametrize(
    "comments,recommendation",
    [("fine", "strong_accept"), ("fine", ""), ("   ", "accept")],
)
def test_submit_review_input_validation(workflow, actors, ids, submission, comments, recommendation):
    workflow.reviews.assign_reviewer(submission.id, ids.reviewer_a, actors["editor"])
    with pytest.raises(ValidationError):
        workflow.reviews.submit_review(submission.id, ids.reviewer_a, comments, recommendation, actors["reviewer_a"])
    assert workflow.repository.get_review_for(submission.id, ids.reviewer_a)["submitted_at"] is None


def test_submit_review_missing_submission(workflow, actors, ids):
    with pytest.raises(NotFound):
        workflow.reviews.submit_review("missing", ids.reviewer_a, "x", "accept", actors["reviewer_a"])


# === submit_review (direct) ===


def test_direct_review_creates_completed_review_and_advances(workflow, actors, ids, submission, sink):
    review = workflow.reviews.submit_review(
        submission.id, ids.reviewer_a, "Well argued.", "accept", actors["reviewer_a"]
    )

    assert review.assigned_by is None
    assert review.submitted_at is not None
    assert _status(workflow, submission.id) == "under_review"
    assert [r for _, r, _ in sink.events("completed")] == [ids.author]
    assert len(sink.events("status_changed")) == 1


def test_second_direct_review_rejected(workflow, actors, ids, submission):
    workflow.reviews.submit_review(submission.id, ids.reviewer_a, "first", "accept", actors["reviewer_a"])

    with pytest.raises(AlreadyReviewed):
        workflow.reviews.submit_review(submission.id, ids.reviewer_a, "again", "reject", actors["reviewer_a"])

    assert len(workflow.repository.list_reviews(submission.id)) == 1


def test_direct_review_by_author_role(workflow, actors, ids, make_submission):
    sub = make_submission()
    with pytest.raises(InvalidRole):
        workflow.reviews.submit_review(sub.id, ids.other_author, "x", "accept", actors["other_author"])


def test_direct_review_of_own_submission(workflow, actors, ids, submission_fields):
    sub = workflow.submissions.create_submission(actors["admin"], **submission_fields())
    with pytest.raises(Forbidden):
        workflow.reviews.submit_review(sub.id, ids.admin, "x", "accept", actors["admin"])


@pytest.mark.parametrize("status", ["revisions_required", "accepted", "rejected"])
def test_direct_review_requires_reviewable_state(workflow, actors, ids, submission, force_status, status):
    force_status(submission.id, status)
    with pytest.raises(InvalidSubmissionState):
        workflow.reviews.submit_review(submission.id, ids.reviewer_a, "x", "accept", actors["reviewer_a"])
    assert workflow.repository.list_reviews(submission.id) == []


def test_direct_review_disabled(workflow_factory, actors, ids, make_submission):
    wf = workflow_factory(allow_direct_review=False)
    sub = make_submission(wf)

    with pytest.raises(NotFound):
        wf.reviews.submit_review(sub.id, ids.reviewer_a, "x", "accept", actors["reviewer_a"])

    wf.reviews.assign_reviewer(sub.id, ids.reviewer_a, actors["editor"])
    review = wf.reviews.submit_review(sub.id, ids.reviewer_a, "x", "accept", actors["reviewer_a"])
    assert review.submitted_at is not None


def test_review_survives_notification_failure(workflow_factory, failing_sink, actors, ids, make_submission):
    wf = workflow_factory(sink=failing_sink)
    sub = make_submission(wf)

    wf.reviews.assign_reviewer(sub.id, ids.reviewer_a, actors["editor"])
    review = wf.reviews.submit_review(sub.id, ids.reviewer_a, "ok", "accept", actors["reviewer_a"])

    assert review.submitted_at is not None
    assert wf.repository.get_submission(sub.id)["status"] == "under_review"


# === summary / listing / queue ===


def test_summary_counts_only_completed_reviews(workflow, actors, ids, submission):
    workflow.reviews.assign_reviewer(submission.id, ids.reviewer_a, actors["editor"])
    workflow.reviews.assign_reviewer(submission.id, ids.reviewer_b, actors["editor"])
    workflow.reviews.submit_review(submission.id, ids.reviewer_a, "good", "accept", actors["reviewer_a"])
    workflow.reviews.submit_review(submission.id, ids.editor, "fine", "major_revisions", actors["editor"])

    summary = workflow.reviews.get_review_summary(submission.id, actors["editor"])

    assert summary.total_reviews == 2
    assert summary.recommendations == {
        "accept": 1,
        "minor_revisions": 0,
        "major_revisions": 1,
        "reject": 0,
    }


def test_summary_of_unreviewed_submission_is_zero_filled(workflow, actors, submission):
    summary = workflow.reviews.get_review_summary(submission.id, actors["author"])
    assert summary.total_reviews == 0
    assert set(summary.recommendations.values()) == {0}
    assert len(summary.recommendations) == 4


def test_summary_visibility(workflow, actors, submission):
    with pytest.raises(Forbidden):
        workflow.reviews.get_review_summary(submission.id, actors["other_author"])
    with pytest.raises(Forbidden):
        workflow.reviews.get_review_summary(submission.id, actors["reviewer_a"])
    with pytest.raises(NotFound):
        workflow.reviews.get_review_summary("missing", actors["editor"])


def test_list_reviews_editorial_only(workflow, actors, ids, submission):
    workflow.reviews.assign_reviewer(submission.id, ids.reviewer_a, actors["editor"])

    reviews = workflow.reviews.list_reviews(submission.id, actors["admin"])
    assert [r.reviewer_id for r in reviews] == [ids.reviewer_a]

    with pytest.raises(Forbidden):
        workflow.reviews.list_reviews(submission.id, actors["author"])


def test_reviewer_queue(workflow, actors, ids, make_submission):
    first = make_submission()
    second = make_submission(title="Second paper")
    workflow.reviews.assign_reviewer(first.id, ids.reviewer_a, actors["editor"])
    workflow.reviews.assign_reviewer(second.id, ids.reviewer_a, actors["editor"])
    workflow.reviews.submit_review(first.id, ids.reviewer_a, "done", "reject", actors["reviewer_a"])

    queue = workflow.reviews.get_reviewer_queue(actors["reviewer_a"])

    assert queue.pending_count == 1
    assert queue.total_reviews == 1
    assert queue.pending[0].submission_id == second.id
    assert queue.completed[0].submission_id == first.id

    with pytest.raises(Forbidden):
        workflow.reviews.get_reviewer_queue(actors["author"])


# === review statistics ===


def test_review_statistics_distribution_and_average_days(workflow, actors, ids, make_submission):
    first = make_submission()
    second = make_submission(title="Second paper")
    a = workflow.reviews.submit_review(first.id, ids.reviewer_a, "good", "accept", actors["reviewer_a"])
    b = workflow.reviews.submit_review(first.id, ids.reviewer_b, "weak", "reject", actors["reviewer_b"])
    c = workflow.reviews.submit_review(second.id, ids.reviewer_a, "ok", "accept", actors["reviewer_a"])
    workflow.reviews.assign_reviewer(second.id, ids.reviewer_b, actors["editor"])

    repo = workflow.repository
    repo.update_submission(first.id, {"submitted_at": "2024-03-01T00:00:00+00:00"})
    repo.update_submission(second.id, {"submitted_at": "2024-03-10T00:00:00+00:00"})
    repo._reviews[a.id]["submitted_at"] = "2024-03-03T00:00:00+00:00"
    repo._reviews[b.id]["submitted_at"] = "2024-03-07T12:00:00+00:00"
    # 早于稿件投稿时间的记录不计入平均值
    repo._reviews[c.id]["submitted_at"] = "2024-03-09T00:00:00+00:00"

    stats = workflow.reviews.get_review_statistics(actors["editor"])

    assert stats.total_reviews == 3
    assert stats.recommendations == {
        "accept": 2,
        "minor_revisions": 0,
        "major_revisions": 0,
        "reject": 1,
    }
    assert stats.average_review_days == pytest.approx((2 + 6.5) / 2)


def test_review_statistics_empty_and_editorial_only(workflow, actors, submission):
    stats = workflow.reviews.get_review_statistics(actors["admin"])
    assert stats.total_reviews == 0
    assert stats.average_review_days == 0.0
    assert set(stats.recommendations.values()) == {0}

    for name in ("author", "reviewer_a"):
        with pytest.raises(Forbidden):
            workflow.reviews.get_review_statistics(actors[name])
