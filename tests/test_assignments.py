import pytest

from conftest import cut_lot, assign_and_approve
from errors import AuthorizationError, DuplicateError, NotFoundError, ValidationError
from services import assignments, production
from services.stages import STITCHING, JEANS_ASSEMBLY, FINISHING


@pytest.fixture()
def lot(db, people):
    return cut_lot(db, people.manager, {"S": 1, "M": 1}, layers=100)


def test_new_assignment_is_pending(db, people, lot):
    a = assignments.create_assignment(db, STITCHING, assigner=people.manager,
                                      assignee_id=people.stitcher.id, source=lot)
    assert a.is_approved is None
    assert a.state == "pending"
    assert a.lot_no == lot.lot_no
    assert a.sizes_json is None
    assert [p.id for p in assignments.list_pending(db, STITCHING, people.stitcher.id)] == [a.id]


def test_approve_is_one_way(db, people, lot):
    a = assign_and_approve(db, STITCHING, assigner=people.manager, assignee=people.stitcher, source=lot)
    assert a.is_approved is True
    assert a.approved_on is not None
    with pytest.raises(ValidationError, match="already approved"):
        assignments.deny(db, STITCHING, assignment_id=a.id, approver_id=people.stitcher.id, remark="late")
    with pytest.raises(ValidationError):
        assignments.approve(db, STITCHING, assignment_id=a.id, approver_id=people.stitcher.id)


def test_deny_requires_remark(db, people, lot):
    a = assignments.create_assignment(db, STITCHING, assigner=people.manager,
                                      assignee_id=people.stitcher.id, source=lot)
    with pytest.raises(ValidationError, match="remark"):
        assignments.deny(db, STITCHING, assignment_id=a.id, approver_id=people.stitcher.id, remark="   ")
    db.refresh(a)
    assert a.is_approved is None


def test_only_assignee_can_decide(db, people, lot):
    a = assignments.create_assignment(db, STITCHING, assigner=people.manager,
                                      assignee_id=people.stitcher.id, source=lot)
    with pytest.raises(NotFoundError):
        assignments.approve(db, STITCHING, assignment_id=a.id, approver_id=people.stitcher2.id)


def test_denied_lot_can_be_reassigned(db, people, lot):
    a = assignments.create_assignment(db, STITCHING, assigner=people.manager,
                                      assignee_id=people.stitcher.id, source=lot)
    denied = assignments.deny(db, STITCHING, assignment_id=a.id, approver_id=people.stitcher.id,
                              remark="fabric defect")
    assert denied.state == "denied"
    assert denied.assignment_remark == "fabric defect"

    again = assignments.create_assignment(db, STITCHING, assigner=people.manager,
                                          assignee_id=people.stitcher.id, source=lot)
    assert again.id != a.id
    assert again.state == "pending"
    assignments.approve(db, STITCHING, assignment_id=again.id, approver_id=people.stitcher.id)
    db.refresh(a)
    assert a.state == "denied"


def test_duplicate_pending_assignment_rejected(db, people, lot):
    assignments.create_assignment(db, STITCHING, assigner=people.manager,
                                  assignee_id=people.stitcher.id, source=lot)
    with pytest.raises(DuplicateError):
        assignments.create_assignment(db, STITCHING, assigner=people.manager,
                                      assignee_id=people.stitcher.id, source=lot)
    # a different stitcher is fine
    assignments.create_assignment(db, STITCHING, assigner=people.manager,
                                  assignee_id=people.stitcher2.id, source=lot)


def test_assignee_must_hold_stage_role(db, people, lot):
    with pytest.raises(ValidationError, match="stitching_master"):
        assignments.create_assignment(db, STITCHING, assigner=people.manager,
                                      assignee_id=people.washer.id, source=lot)


def test_only_owner_or_operator_assigns(db, people, lot):
    with pytest.raises(AuthorizationError):
        assignments.create_assignment(db, STITCHING, assigner=people.hosiery_manager,
                                      assignee_id=people.stitcher.id, source=lot)
    a = assignments.create_assignment(db, STITCHING, assigner=people.operator,
                                      assignee_id=people.stitcher.id, source=lot)
    assert a.assigner_id == people.operator.id


def test_assigned_sizes_must_belong_to_source(db, people, lot):
    with pytest.raises(ValidationError, match="XL"):
        assignments.create_assignment(db, STITCHING, assigner=people.manager,
                                      assignee_id=people.stitcher.id, source=lot, sizes={"XL": 5})
    a = assignments.create_assignment(db, STITCHING, assigner=people.manager,
                                      assignee_id=people.stitcher.id, source=lot,
                                      sizes={"S": "30", "M": "0"})
    assert a.sizes_json == {"S": 30}


def test_stage_must_follow_the_lot_chain(db, people):
    hosiery = cut_lot(db, people.hosiery_manager, {"S": 1}, layers=10)
    st = assign_and_approve(db, STITCHING, assigner=people.hosiery_manager,
                            assignee=people.stitcher, source=hosiery)
    record = production.create_production(db, STITCHING, user_id=people.stitcher.id,
                                          assignment_id=st.id, sizes={"S": 10})
    with pytest.raises(ValidationError, match="does not apply"):
        assignments.create_assignment(db, JEANS_ASSEMBLY, assigner=people.stitcher,
                                      assignee_id=people.assembler.id, source=record)
    # hosiery goes straight from stitching to finishing
    fa = assignments.create_assignment(db, FINISHING, assigner=people.stitcher,
                                       assignee_id=people.finisher.id, source=record)
    assert fa.stitching_data_id == record.id


def test_denim_finishing_cannot_skip_washing(db, people, denim_chain):
    with pytest.raises(ValidationError, match="previous stage"):
        assignments.create_assignment(db, FINISHING, assigner=people.stitcher,
                                      assignee_id=people.finisher.id, source=denim_chain["stitching"])


def test_approved_open_hides_started_lots(db, people, lot):
    a = assign_and_approve(db, STITCHING, assigner=people.manager, assignee=people.stitcher, source=lot)
    assert [x.id for x in assignments.list_approved_open(db, STITCHING, people.stitcher.id)] == [a.id]
    production.create_production(db, STITCHING, user_id=people.stitcher.id, assignment_id=a.id,
                                 sizes={"S": 5})
    assert assignments.list_approved_open(db, STITCHING, people.stitcher.id) == []
