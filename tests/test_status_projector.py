from datetime import date, timedelta

import pytest

from conftest import cut_lot, assign_and_approve, run_stage
from models import CuttingLot
from services import assignments
from services import status_projector as projector
from services.stages import STITCHING, JEANS_ASSEMBLY, WASHING_IN, FINISHING
from services.status_projector import LotPipeline, StageState, NA


def _statuses(row, denim=True):
    depts = ("stitching", "assembly", "washing", "washing_in", "finishing") if denim else ("stitching", "finishing")
    return [row[f"{d}_status"] for d in depts]


def test_uncut_pipeline_reads_in_cutting_everywhere():
    row = projector.project(LotPipeline(lot_no="AK001", total_pieces=200))
    assert row["lot_type"] == "denim"
    assert row["cutting_status"] == "Completed"
    assert _statuses(row) == ["In Cutting"] * 5


def test_hosiery_lot_skips_denim_departments():
    row = projector.project(LotPipeline(lot_no="KL9", total_pieces=10))
    assert row["lot_type"] == "hosiery"
    assert row["stitching_status"] == "In Cutting"
    assert row["finishing_status"] == "In Cutting"
    assert (row["assembly_status"], row["washing_status"], row["washing_in_status"]) == (NA, NA, NA)


@pytest.mark.parametrize("state, expected", [
    (StageState(has_assignment=True, is_approved=None, op="sara"), "Pending Approval by sara"),
    (StageState(has_assignment=True, is_approved=False, op="sara"), "Denied by sara"),
    (StageState(has_assignment=True, is_approved=True, op="sara"), "In-Line"),
    (StageState(has_assignment=True, is_approved=True, op="sara", produced=60), "40 Pending"),
    (StageState(has_assignment=True, is_approved=True, op="sara", produced=100), "Completed"),
])
def test_stitching_status_ladder(state, expected):
    row = projector.project(LotPipeline(lot_no="AK1", total_pieces=100, stages={"stitching": state}))
    assert row["stitching_status"] == expected


@pytest.mark.parametrize("approved", [None, False])
def test_blocked_stage_blocks_everything_after_it(approved):
    stages = {
        "stitching": StageState(has_assignment=True, is_approved=True, op="sara", produced=100),
        "jeans_assembly": StageState(has_assignment=True, is_approved=approved, op="anil"),
    }
    row = projector.project(LotPipeline(lot_no="AK1", total_pieces=100, stages=stages))
    assert row["stitching_status"] == "Completed"
    assert row["assembly_status"].endswith("anil")
    assert (row["washing_status"], row["washing_in_status"], row["finishing_status"]) == ("In Assembly",) * 3


def test_missing_assignment_downstream_of_progress():
    stages = {
        "stitching": StageState(has_assignment=True, is_approved=True, op="sara", produced=30),
    }
    row = projector.project(LotPipeline(lot_no="AK1", total_pieces=100, stages=stages))
    assert row["stitching_status"] == "70 Pending"
    assert _statuses(row)[1:] == ["In Stitching"] * 4


def test_pending_uses_previous_stage_output():
    stages = {
        "stitching": StageState(has_assignment=True, is_approved=True, op="sara", produced=80),
        "jeans_assembly": StageState(has_assignment=True, is_approved=True, op="anil", produced=50),
    }
    row = projector.project(LotPipeline(lot_no="AK1", total_pieces=100, stages=stages))
    assert row["assembly_status"] == "30 Pending"
    assert row["assembly_qty"] == 50


def test_lot_status_from_database_with_denial_and_reassignment(db, people):
    lot = cut_lot(db, people.manager, {"S": 1, "M": 1}, layers=100)
    a = assignments.create_assignment(db, STITCHING, assigner=people.manager,
                                      assignee_id=people.stitcher.id, source=lot)
    assignments.deny(db, STITCHING, assignment_id=a.id, approver_id=people.stitcher.id, remark="fabric defect")

    row = projector.lot_status(db, lot.lot_no)
    assert row["stitching_status"] == "Denied by sara"
    assert row["assembly_status"] == "In Stitching"

    again = assignments.create_assignment(db, STITCHING, assigner=people.manager,
                                          assignee_id=people.stitcher2.id, source=lot)
    assert projector.lot_status(db, lot.lot_no)["stitching_status"] == "Pending Approval by sunil"
    assignments.approve(db, STITCHING, assignment_id=again.id, approver_id=people.stitcher2.id)
    assert projector.lot_status(db, lot.lot_no)["stitching_status"] == "In-Line"


def test_lot_status_unknown_lot(db):
    assert projector.lot_status(db, "nope") is None


def test_hosiery_completed_in_finishing(db, people):
    lot = cut_lot(db, people.hosiery_manager, {"S": 1}, layers=40)
    st = run_stage(db, STITCHING, assigner=people.hosiery_manager, worker=people.stitcher,
                   source=lot, sizes={"S": 40})
    run_stage(db, FINISHING, assigner=people.stitcher, worker=people.finisher, source=st, sizes={"S": 40})
    row = projector.lot_status(db, lot.lot_no)
    assert row["stitching_status"] == "Completed"
    assert row["finishing_status"] == "Completed"
    assert row["finishing_op"] == "farah"
    assert row["assembly_status"] == NA


def test_denim_chain_progress(db, people, denim_chain):
    row = projector.lot_status(db, denim_chain["lot"].lot_no)
    assert _statuses(row)[:3] == ["Completed", "Completed", "Completed"]
    assert row["washing_in_status"] == "In Washing"
    assign_and_approve(db, WASHING_IN, assigner=people.washer, assignee=people.washer_in,
                       source=denim_chain["washing"])
    row = projector.lot_status(db, denim_chain["lot"].lot_no)
    assert row["washing_in_status"] == "In-Line"
    assert row["finishing_status"] == "In WashingIn"


def test_pic_report_filters(db, people, denim_chain):
    hosiery = cut_lot(db, people.hosiery_manager, {"S": 1}, layers=10)

    everything = projector.build_pic_report(db)
    assert {r["lot_no"] for r in everything} == {denim_chain["lot"].lot_no, hosiery.lot_no}

    denim = projector.build_pic_report(db, lot_type="denim")
    assert [r["lot_no"] for r in denim] == [denim_chain["lot"].lot_no]

    # hosiery lots have no washing department at all
    washing = projector.build_pic_report(db, department="washing")
    assert [r["lot_no"] for r in washing] == [denim_chain["lot"].lot_no]
    assert washing[0]["status"] == "Completed"

    not_assigned = projector.build_pic_report(db, department="stitching", status="not_assigned")
    assert [r["lot_no"] for r in not_assigned] == [hosiery.lot_no]

    completed = projector.build_pic_report(db, department="assembly", status="completed")
    assert [r["lot_no"] for r in completed] == [denim_chain["lot"].lot_no]


def test_pic_report_date_window(db, people):
    lot = cut_lot(db, people.manager, {"S": 1}, layers=10)
    lot.created_at = lot.created_at - timedelta(days=30)
    db.commit()
    today = date.today()
    assert projector.build_pic_report(db, start_date=today - timedelta(days=1)) == []
    rows = projector.build_pic_report(db, start_date=today - timedelta(days=60), end_date=today)
    assert [r["lot_no"] for r in rows] == [lot.lot_no]


def test_department_status_all_picks_last_applicable():
    row = projector.project(LotPipeline(lot_no="KL1", total_pieces=5))
    assert projector.department_status(row, "all") == (True, "In Cutting")
    assert projector.department_status(row, "washing") == (False, NA)
    assert projector.department_status(row, "cutting") == (True, "Completed")


def test_cutting_lot_model_drives_lot_type(db, people):
    db.add(CuttingLot(lot_no="UM12", sku="X", user_id=people.manager.id, total_pieces=0))
    db.commit()
    assert projector.lot_status(db, "UM12")["lot_type"] == "denim"


def test_lot_status_ignores_other_lots(db, people):
    mine = cut_lot(db, people.manager, {"S": 1}, layers=10)
    other = cut_lot(db, people.manager, {"S": 1}, layers=10)
    run_stage(db, STITCHING, assigner=people.manager, worker=people.stitcher, source=other, sizes={"S": 10})

    assert projector.lot_status(db, mine.lot_no)["stitching_status"] == "In Cutting"
    assert projector.lot_status(db, other.lot_no)["stitching_status"] == "Completed"
