from datetime import datetime, timezone

from openpyxl import load_workbook

from conftest import cut_lot, run_stage
from excel.export_stage import rows_workbook, stage_workbook
from services.stages import STITCHING
from services import production


def test_stage_workbook_has_entries_and_sizes(db, people):
    lot = cut_lot(db, people.manager, {"S": 1, "M": 1}, layers=5)
    run_stage(db, STITCHING, assigner=people.manager, worker=people.stitcher, source=lot, sizes={"S": 5, "M": 2})
    records = production.all_entries(db, STITCHING, user_id=people.stitcher.id)

    wb = load_workbook(stage_workbook("Stitching", records))
    assert wb.sheetnames == ["Stitching Data", "Stitching Sizes"]
    main = list(wb["Stitching Data"].values)
    assert main[0][:4] == ("ID", "Lot No", "SKU", "Total Pieces")
    assert main[1][1:4] == (lot.lot_no, "SKU-1", 7)
    sizes = list(wb["Stitching Sizes"].values)
    assert [row[2:] for row in sizes[1:]] == [("S", 5), ("M", 2)]


def test_rows_workbook_strips_timezones():
    when = datetime(2026, 5, 1, 8, 30, tzinfo=timezone.utc)
    buf = rows_workbook("PIC Report", [("Lot No", "lot_no"), ("Created At", "created_at")],
                        [{"lot_no": "AK1", "created_at": when}])
    rows = list(load_workbook(buf)["PIC Report"].values)
    assert rows == [("Lot No", "Created At"), ("AK1", datetime(2026, 5, 1, 8, 30))]
