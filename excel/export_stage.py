# excel/export_stage.py
from datetime import datetime
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Font

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _cell(value):
    # openpyxl refuses tz-aware datetimes
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.replace(tzinfo=None)
    if isinstance(value, (dict, list)):
        return str(value)
    return value


def _write_sheet(ws, header: list[str], rows):
    ws.append(header)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append([_cell(v) for v in row])
    for idx, title in enumerate(header, start=1):
        ws.column_dimensions[ws.cell(row=1, column=idx).column_letter].width = max(12, len(title) + 2)


def _save(wb: Workbook) -> BytesIO:
    buf = BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


def stage_workbook(stage_label: str, records) -> BytesIO:
    """Main sheet (one row per entry) and a sizes sheet (one row per size)."""
    wb = Workbook()
    main_ws = wb.active
    main_ws.title = f"{stage_label} Data"[:31]
    _write_sheet(
        main_ws,
        ["ID", "Lot No", "SKU", "Total Pieces", "Remark", "Image URL", "Created At"],
        ([r.id, r.lot_no, r.sku, r.total_pieces, r.remark, r.image_url, r.created_at] for r in records),
    )

    sizes_ws = wb.create_sheet(f"{stage_label} Sizes"[:31])
    _write_sheet(
        sizes_ws,
        ["Entry ID", "Lot No", "Size", "Pieces"],
        ([r.id, r.lot_no, s.size_label, s.pieces] for r in records for s in r.sizes),
    )
    return _save(wb)


def rows_workbook(title: str, columns: list[tuple[str, str]], rows: list[dict]) -> BytesIO:
    """Single sheet from dict rows; columns are (header, key) pairs."""
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]
    _write_sheet(ws, [h for h, _ in columns], ([row.get(k) for _, k in columns] for row in rows))
    return _save(wb)
