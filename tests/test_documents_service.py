import pytest
from sqlalchemy import Text
from sqlalchemy.exc import OperationalError

from modules.documents.exceptions import (
    AuthorizationError, ConflictError, NotFoundError, PersistenceError, ValidationError
)
from modules.documents.models import (
    ApprovalStatus, Approver, Document, DocumentStatus, ExternalSigner,
    SigningStatus, StatusUpdate, UpdateType
)
from modules.documents.repositories.document_repository import DocumentRepository
from modules.documents.services import DocumentService, LocalBlobStore

DOC_URL = "file:///tmp/uploads/1700000000000_budget.pdf"


def submit(db, creator, approvers, signers=1, submission_id=None):
    return DocumentService.submit_document(
        db,
        title="Annual budget",
        description="Budget for the next season",
        document_url=DOC_URL,
        creator_id=creator.id,
        approver_ids=[a.id for a in approvers],
        signers=[{"name": f"Signer {i}", "designation": "Treasurer"} for i in range(1, signers + 1)],
        submission_id=submission_id,
    )


def approver_row(db, document_id, user):
    return db.query(Approver).filter_by(document_id=document_id, user_id=user.id).one()


def signer_rows(db, document_id):
    return db.query(ExternalSigner).filter_by(document_id=document_id).order_by(ExternalSigner.order).all()


def decide(db, document_id, user, decision, comments=None):
    row = approver_row(db, document_id, user)
    return DocumentService.record_approver_decision(db, document_id, row.id, user.id, decision, comments)


def rescan_status(db, document_id):
    """Status recomputed from nothing but the child rows."""
    approvals = [a.status for a in db.query(Approver).filter_by(document_id=document_id)]
    signatures = [s.status for s in db.query(ExternalSigner).filter_by(document_id=document_id)]
    if ApprovalStatus.REJECTED in approvals or SigningStatus.REJECTED in signatures:
        return DocumentStatus.REJECTED
    if any(a != ApprovalStatus.APPROVED for a in approvals):
        return DocumentStatus.PENDING_APPROVAL
    if all(s == SigningStatus.SIGNED for s in signatures):
        return DocumentStatus.COMPLETED
    return DocumentStatus.IN_PROGRESS


def current_status(db, document_id):
    db.expire_all()
    return db.get(Document, document_id).status


def assert_consistent(db, document_id):
    assert current_status(db, document_id) == rescan_status(db, document_id)


# --- submission ---

def test_submit_creates_all_rows(db, creator, admins):
    doc_id = submit(db, creator, admins[:2], signers=2)

    doc = db.get(Document, doc_id)
    assert doc.status == DocumentStatus.PENDING_APPROVAL
    assert doc.created_by == creator.id
    assert [(a.user_id, a.order, a.status) for a in doc.approvers] == [
        (admins[0].id, 1, ApprovalStatus.PENDING),
        (admins[1].id, 2, ApprovalStatus.PENDING),
    ]
    assert [(s.name, s.order, s.status) for s in doc.external_signers] == [
        ("Signer 1", 1, SigningStatus.PENDING),
        ("Signer 2", 2, SigningStatus.PENDING),
    ]
    events = db.query(StatusUpdate).filter_by(document_id=doc_id).all()
    assert len(events) == 1
    assert events[0].update_type == UpdateType.CREATED
    assert events[0].message == "Document created and submitted for approval"


def test_scenario_e_empty_approvers_rejected(db, creator):
    with pytest.raises(ValidationError):
        submit(db, creator, [])
    assert db.query(Document).count() == 0
    assert db.query(StatusUpdate).count() == 0


def test_empty_signers_rejected(db, creator, admins):
    with pytest.raises(ValidationError):
        submit(db, creator, admins[:1], signers=0)
    assert db.query(Document).count() == 0


def test_duplicate_approvers_rejected(db, creator, admins):
    with pytest.raises(ValidationError):
        DocumentService.submit_document(
            db, "Budget", "", DOC_URL, creator.id,
            [admins[0].id, admins[0].id], [{"name": "A", "designation": "B"}],
        )
    assert db.query(Approver).count() == 0


def test_blank_signer_fields_rejected(db, creator, admins):
    with pytest.raises(ValidationError):
        DocumentService.submit_document(
            db, "Budget", "", DOC_URL, creator.id,
            [admins[0].id], [{"name": "  ", "designation": "President"}],
        )


def test_non_privileged_approver_rejected(db, creator, make_user):
    member = make_user("2001")
    with pytest.raises(ValidationError):
        submit(db, creator, [member])
    assert db.query(Document).count() == 0


def test_unknown_approver_not_found(db, creator, admins):
    with pytest.raises(NotFoundError):
        DocumentService.submit_document(
            db, "Budget", "", DOC_URL, creator.id,
            [admins[0].id, 9999], [{"name": "A", "designation": "B"}],
        )


def test_resubmission_with_same_key_is_idempotent(db, creator, admins):
    first = submit(db, creator, admins[:2], submission_id="sub-123")
    second = submit(db, creator, admins[:2], submission_id="sub-123")

    assert first == second
    assert db.query(Document).count() == 1
    assert db.query(Approver).count() == 2
    assert db.query(ExternalSigner).count() == 1
    assert db.query(StatusUpdate).count() == 1


def test_submission_key_of_another_creator_conflicts(db, creator, admins, make_user):
    other = make_user("1002")
    submit(db, creator, admins[:1], submission_id="sub-shared")
    with pytest.raises(ConflictError):
        submit(db, other, admins[:1], submission_id="sub-shared")


def test_blank_submission_key_is_not_stored(db, creator, admins):
    first = submit(db, creator, admins[:1], submission_id="")
    second = submit(db, creator, admins[:1], submission_id="   ")

    assert first != second
    assert db.query(Document).count() == 2
    assert db.get(Document, first).submission_id is None
    assert db.get(Document, second).submission_id is None


def test_failed_submission_leaves_no_rows(db, creator, admins, monkeypatch):
    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("connection lost"))

    monkeypatch.setattr(db, "commit", broken_commit)
    with pytest.raises(PersistenceError):
        submit(db, creator, admins[:2])
    monkeypatch.undo()

    assert db.query(Document).count() == 0
    assert db.query(Approver).count() == 0
    assert db.query(ExternalSigner).count() == 0


# --- approvals ---

def test_scenario_a_two_approvers(db, creator, admins):
    doc_id = submit(db, creator, admins[:2])
    assert current_status(db, doc_id) == DocumentStatus.PENDING_APPROVAL

    assert decide(db, doc_id, admins[0], "approved") == DocumentStatus.PENDING_APPROVAL
    assert_consistent(db, doc_id)

    assert decide(db, doc_id, admins[1], "approved") == DocumentStatus.IN_PROGRESS
    assert current_status(db, doc_id) == DocumentStatus.IN_PROGRESS
    assert_consistent(db, doc_id)


def test_approval_sets_timestamp_and_comments(db, creator, admins):
    doc_id = submit(db, creator, admins[:1])
    decide(db, doc_id, admins[0], "approved", comments="Looks fine")

    row = approver_row(db, doc_id, admins[0])
    assert row.status == ApprovalStatus.APPROVED
    assert row.comments == "Looks fine"
    assert row.approved_at is not None


def test_scenario_c_rejection_is_immediate_and_final(db, creator, admins):
    doc_id = submit(db, creator, admins[:2])

    assert decide(db, doc_id, admins[0], "rejected", "Missing figures") == DocumentStatus.REJECTED
    assert approver_row(db, doc_id, admins[0]).approved_at is None

    with pytest.raises(AuthorizationError):
        decide(db, doc_id, admins[1], "approved")
    assert current_status(db, doc_id) == DocumentStatus.REJECTED
    assert approver_row(db, doc_id, admins[1]).status == ApprovalStatus.PENDING
    assert_consistent(db, doc_id)


def test_scenario_d_only_assigned_approver_can_decide(db, creator, admins):
    doc_id = submit(db, creator, admins[:2])
    row = approver_row(db, doc_id, admins[0])

    with pytest.raises(AuthorizationError):
        DocumentService.record_approver_decision(db, doc_id, row.id, admins[2].id, "approved")

    db.expire_all()
    assert approver_row(db, doc_id, admins[0]).status == ApprovalStatus.PENDING
    assert current_status(db, doc_id) == DocumentStatus.PENDING_APPROVAL
    assert db.query(StatusUpdate).filter_by(document_id=doc_id).count() == 1


def test_decision_cannot_be_changed(db, creator, admins):
    doc_id = submit(db, creator, admins[:2])
    decide(db, doc_id, admins[0], "approved")
    with pytest.raises(AuthorizationError):
        decide(db, doc_id, admins[0], "rejected")
    assert current_status(db, doc_id) == DocumentStatus.PENDING_APPROVAL


def test_invalid_decision_rejected(db, creator, admins):
    doc_id = submit(db, creator, admins[:1])
    with pytest.raises(ValidationError):
        decide(db, doc_id, admins[0], "pending")


def test_approver_of_another_document_not_found(db, creator, admins):
    first = submit(db, creator, admins[:1])
    second = submit(db, creator, admins[1:2])
    foreign_row = approver_row(db, second, admins[1])
    with pytest.raises(NotFoundError):
        DocumentService.record_approver_decision(db, first, foreign_row.id, admins[1].id, "approved")


def test_unknown_document_not_found(db, admins):
    with pytest.raises(NotFoundError):
        DocumentService.record_approver_decision(db, 12345, 1, admins[0].id, "approved")


@pytest.mark.parametrize("order", [(0, 1, 2), (2, 0, 1), (1, 2, 0)])
def test_all_approve_in_any_order(db, creator, admins, order):
    doc_id = submit(db, creator, admins)
    for index in order:
        decide(db, doc_id, admins[index], "approved")
        assert_consistent(db, doc_id)
    assert current_status(db, doc_id) == DocumentStatus.IN_PROGRESS


@pytest.mark.parametrize("order", [(0, 1, 2), (2, 0, 1)])
@pytest.mark.parametrize("rejecter", [0, 1, 2])
def test_single_rejection_wins_in_any_order(db, creator, admins, order, rejecter):
    doc_id = submit(db, creator, admins)
    for index in order:
        decision = "rejected" if index == rejecter else "approved"
        try:
            decide(db, doc_id, admins[index], decision)
        except AuthorizationError:
            # decisions after the rejection are refused
            pass
        assert_consistent(db, doc_id)
    assert current_status(db, doc_id) == DocumentStatus.REJECTED


def test_decision_events_recorded(db, creator, admins):
    doc_id = submit(db, creator, admins[:2])
    decide(db, doc_id, admins[0], "approved")
    decide(db, doc_id, admins[1], "approved", comments="Go ahead")

    events = (
        db.query(StatusUpdate)
        .filter_by(document_id=doc_id)
        .order_by(StatusUpdate.id)
        .all()
    )
    assert [e.update_type for e in events] == [
        UpdateType.CREATED, UpdateType.APPROVED, UpdateType.APPROVED
    ]
    assert events[1].message == f"Document approved by {admins[0].full_name}"
    assert events[2].message == "Go ahead"
    assert events[2].updated_by == admins[1].id


def test_lost_status_race_raises_conflict_and_rolls_back(db, creator, admins, monkeypatch):
    doc_id = submit(db, creator, admins[:1])
    monkeypatch.setattr(DocumentRepository, "compare_and_set_status", lambda *args: False)

    with pytest.raises(ConflictError):
        decide(db, doc_id, admins[0], "approved")
    monkeypatch.undo()

    assert approver_row(db, doc_id, admins[0]).status == ApprovalStatus.PENDING
    assert current_status(db, doc_id) == DocumentStatus.PENDING_APPROVAL
    assert db.query(StatusUpdate).filter_by(document_id=doc_id).count() == 1


def test_decision_survives_failed_status_repair(db, creator, admins, monkeypatch):
    doc_id = submit(db, creator, admins[:1])

    def broken_reconcile(session, document_id):
        raise PersistenceError("Database error while committing")

    monkeypatch.setattr(DocumentService, "reconcile_status", staticmethod(broken_reconcile))
    assert decide(db, doc_id, admins[0], "approved") == DocumentStatus.IN_PROGRESS
    monkeypatch.undo()

    assert approver_row(db, doc_id, admins[0]).status == ApprovalStatus.APPROVED
    assert current_status(db, doc_id) == DocumentStatus.IN_PROGRESS


def test_long_comments_are_kept_in_history(db, creator, admins):
    assert isinstance(StatusUpdate.__table__.c.message.type, Text)
    doc_id = submit(db, creator, admins[:1])
    comments = "The figures for the youth teams need another look. " * 60

    decide(db, doc_id, admins[0], "approved", comments)

    event = db.query(StatusUpdate).filter_by(document_id=doc_id, update_type=UpdateType.APPROVED).one()
    assert len(event.message) > 1024
    assert event.message == comments


def test_reconcile_repairs_status_missed_by_concurrent_decisions(db, creator, admins):
    doc_id = submit(db, creator, admins[:2])
    # Both decisions committed without either request seeing the other
    for user in admins[:2]:
        approver_row(db, doc_id, user).status = ApprovalStatus.APPROVED
    db.commit()
    assert current_status(db, doc_id) == DocumentStatus.PENDING_APPROVAL

    assert DocumentService.reconcile_status(db, doc_id) == DocumentStatus.IN_PROGRESS
    assert_consistent(db, doc_id)
    assert DocumentService.reconcile_status(db, doc_id) == DocumentStatus.IN_PROGRESS


# --- signatures ---

def approved_document(db, creator, approvers, signers=1):
    doc_id = submit(db, creator, approvers, signers=signers)
    for user in approvers:
        decide(db, doc_id, user, "approved")
    return doc_id


def test_scenario_b_single_signer_completes(db, creator, admins):
    doc_id = approved_document(db, creator, admins[:1])
    signer = signer_rows(db, doc_id)[0]

    status = DocumentService.record_signer_outcome(db, doc_id, signer.id, creator.id, "signed")

    assert status == DocumentStatus.COMPLETED
    assert current_status(db, doc_id) == DocumentStatus.COMPLETED
    db.expire_all()
    assert signer_rows(db, doc_id)[0].signed_at is not None
    assert_consistent(db, doc_id)


def test_partial_signatures_keep_in_progress(db, creator, admins):
    doc_id = approved_document(db, creator, admins[:1], signers=2)
    first, second = signer_rows(db, doc_id)

    assert DocumentService.record_signer_outcome(
        db, doc_id, second.id, admins[0].id, "signed"
    ) == DocumentStatus.IN_PROGRESS
    assert DocumentService.record_signer_outcome(
        db, doc_id, first.id, admins[0].id, "signed"
    ) == DocumentStatus.COMPLETED


def test_signer_rejection_rejects_document(db, creator, admins):
    doc_id = approved_document(db, creator, admins[:1], signers=2)
    first, second = signer_rows(db, doc_id)

    status = DocumentService.record_signer_outcome(
        db, doc_id, first.id, creator.id, "rejected", "Refused to sign"
    )
    assert status == DocumentStatus.REJECTED

    with pytest.raises(AuthorizationError):
        DocumentService.record_signer_outcome(db, doc_id, second.id, creator.id, "signed")
    assert current_status(db, doc_id) == DocumentStatus.REJECTED

    events = db.query(StatusUpdate).filter_by(document_id=doc_id).order_by(StatusUpdate.id.desc()).all()
    assert events[0].update_type == UpdateType.REJECTED
    assert events[0].message == "Refused to sign"


def test_signature_event_kind(db, creator, admins):
    doc_id = approved_document(db, creator, admins[:1], signers=2)
    signer = signer_rows(db, doc_id)[0]
    DocumentService.record_signer_outcome(db, doc_id, signer.id, creator.id, "signed")

    last = db.query(StatusUpdate).filter_by(document_id=doc_id).order_by(StatusUpdate.id.desc()).first()
    assert last.update_type == UpdateType.SIGNATURE_RECEIVED
    assert last.message == "Signature signed by Signer 1"


def test_signatures_require_approval_first(db, creator, admins):
    doc_id = submit(db, creator, admins[:1])
    signer = signer_rows(db, doc_id)[0]
    with pytest.raises(AuthorizationError):
        DocumentService.record_signer_outcome(db, doc_id, signer.id, creator.id, "signed")
    assert signer_rows(db, doc_id)[0].status == SigningStatus.PENDING


def test_unrelated_member_cannot_record_signature(db, creator, admins, make_user):
    outsider = make_user("3001")
    doc_id = approved_document(db, creator, admins[:1])
    signer = signer_rows(db, doc_id)[0]
    with pytest.raises(AuthorizationError):
        DocumentService.record_signer_outcome(db, doc_id, signer.id, outsider.id, "signed")
    assert current_status(db, doc_id) == DocumentStatus.IN_PROGRESS


def test_completed_document_is_terminal(db, creator, admins):
    doc_id = approved_document(db, creator, admins[:1])
    signer = signer_rows(db, doc_id)[0]
    DocumentService.record_signer_outcome(db, doc_id, signer.id, creator.id, "signed")

    with pytest.raises(AuthorizationError):
        DocumentService.record_signer_outcome(db, doc_id, signer.id, creator.id, "rejected")
    row = approver_row(db, doc_id, admins[0])
    with pytest.raises(AuthorizationError):
        DocumentService.record_approver_decision(db, doc_id, row.id, admins[0].id, "rejected")
    assert current_status(db, doc_id) == DocumentStatus.COMPLETED


def test_inactive_member_cannot_act(db, creator, admins):
    doc_id = submit(db, creator, admins[:1])
    admins[0].is_active = False
    db.commit()
    with pytest.raises(AuthorizationError):
        decide(db, doc_id, admins[0], "approved")


# --- views and lists ---

def test_document_view_ordering(db, creator, admins):
    doc_id = DocumentService.submit_document(
        db, "Budget", "", DOC_URL, creator.id,
        [admins[2].id, admins[0].id],
        [{"name": "Zoe", "designation": "Mayor"}, {"name": "Abe", "designation": "Notary"}],
    )
    decide(db, doc_id, admins[0], "approved")

    view = DocumentService.get_document_view(db, doc_id)
    assert [a.user_id for a in view.approvers] == [admins[2].id, admins[0].id]
    assert [s.name for s in view.external_signers] == ["Zoe", "Abe"]
    assert [u.update_type for u in view.status_updates] == [UpdateType.APPROVED, UpdateType.CREATED]
    assert view.creator.full_name == creator.full_name
    assert view.approvers[0].user.employee_code == admins[2].employee_code


def test_document_view_is_idempotent(db, creator, admins):
    doc_id = submit(db, creator, admins[:2])
    decide(db, doc_id, admins[0], "approved")

    first = DocumentService.get_document_view(db, doc_id).model_dump()
    second = DocumentService.get_document_view(db, doc_id).model_dump()
    assert first == second


def test_document_view_missing(db):
    with pytest.raises(NotFoundError):
        DocumentService.get_document_view(db, 404)


def test_pending_approvals_only_lists_open_assignments(db, creator, admins):
    waiting = submit(db, creator, admins[:2])
    decided = submit(db, creator, admins[:1])
    decide(db, decided, admins[0], "approved")

    pending_for_first = DocumentService.list_pending_approvals(db, admins[0].id)
    assert [d.id for d in pending_for_first] == [waiting]
    pending_for_third = DocumentService.list_pending_approvals(db, admins[2].id)
    assert pending_for_third == []


def test_list_privileged_subjects(db, creator, admins):
    names = [u.full_name for u in DocumentService.list_privileged_subjects(db)]
    assert names == sorted(a.full_name for a in admins)
    assert creator.full_name not in names


# --- general updates and deletion ---

def test_post_status_update(db, creator, admins):
    doc_id = submit(db, creator, admins[:1])
    event = DocumentService.post_status_update(db, doc_id, admins[0].id, "Will review on Monday")
    assert event.update_type == UpdateType.GENERAL_UPDATE
    assert current_status(db, doc_id) == DocumentStatus.PENDING_APPROVAL


def test_post_status_update_requires_involvement(db, creator, admins, make_user):
    outsider = make_user("3002")
    doc_id = submit(db, creator, admins[:1])
    with pytest.raises(AuthorizationError):
        DocumentService.post_status_update(db, doc_id, outsider.id, "Hello")
    with pytest.raises(ValidationError):
        DocumentService.post_status_update(db, doc_id, creator.id, "   ")


def test_delete_cascades(db, creator, admins):
    doc_id = submit(db, creator, admins[:2], signers=2)
    decide(db, doc_id, admins[0], "approved")

    DocumentService.delete_document(db, doc_id, creator.id)

    assert db.query(Document).count() == 0
    assert db.query(Approver).count() == 0
    assert db.query(ExternalSigner).count() == 0
    assert db.query(StatusUpdate).count() == 0


def test_delete_requires_creator_or_privileged(db, creator, admins, make_user):
    outsider = make_user("3003")
    doc_id = submit(db, creator, admins[:1])
    with pytest.raises(AuthorizationError):
        DocumentService.delete_document(db, doc_id, outsider.id)
    DocumentService.delete_document(db, doc_id, admins[2].id)
    assert db.query(Document).count() == 0


def test_delete_survives_blob_removal_failure(db, creator, admins, tmp_path):
    class StuckStore(LocalBlobStore):
        def delete(self, url):
            raise PersistenceError("Could not remove the stored file")

    doc_id = submit(db, creator, admins[:1])
    DocumentService.delete_document(db, doc_id, creator.id, blob_store=StuckStore(str(tmp_path)))

    assert db.query(Document).count() == 0
