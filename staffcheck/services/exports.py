from __future__ import annotations

from datetime import datetime
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet
from sqlalchemy.orm import Session

from staffcheck.models import Attendance, AttendanceStatus, Profile
from staffcheck.schemas import MonthlyReportResponse
from staffcheck.services.attendance import to_local
from staffcheck.services.reports import load_month_rows, parse_month, summarize_month

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SUMMARY_HEADERS = [
    "Employee",
    "Employee Code",
    "Department",
    "Days Present",
    "Late Days",
    "Total Hours",
    "Average Hours",
]
DETAIL_HEADERS = [
    "Date",
    "Employee",
    "Employee Code",
    "Check In",
    "Check Out",
    "Hours",
    "Status",
    "Check In Location",
    "Check Out Location",
    "Notes",
]

HEADER_FILL = PatternFill(fill_type="solid", fgColor="0B4F73")
META_LABEL_FILL = PatternFill(fill_type="solid", fgColor="EAF4F9")
META_VALUE_FILL = PatternFill(fill_type="solid", fgColor="F8FCFF")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F7FBFE")
WARNING_FILL = PatternFill(fill_type="solid", fgColor="FFF3CD")
ALERT_FILL = PatternFill(fill_type="solid", fgColor="FDE2E4")

HEADER_FONT = Font(bold=True, color="FFFFFF")
BOLD_FONT = Font(bold=True, color="0F172A")
TITLE_FONT = Font(bold=True, color="0B4F73", size=14)
MUTED_FONT = Font(color="334155")

THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)


def _to_excel_datetime(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return to_local(value).replace(tzinfo=None)


def _style_header(ws: Worksheet, row: int = 1) -> None:
    for cell in ws[row]:
        if cell.value is None:
            continue
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        max_len = 0
        col_letter = get_column_letter(column_cells[0].column)
        for cell in column_cells:
            if cell.coordinate in ws.merged_cells:
                continue
            value = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(value))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _merge_title(ws: Worksheet, row: int, text: str, *, width: int) -> None:
    ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=width)
    cell = ws.cell(row=row, column=1, value=text)
    cell.font = TITLE_FONT
    cell.alignment = Alignment(horizontal="left", vertical="center")


def _style_metadata_rows(ws: Worksheet, *, start_row: int, end_row: int) -> None:
    for row_idx in range(start_row, end_row + 1):
        label_cell = ws.cell(row=row_idx, column=1)
        value_cell = ws.cell(row=row_idx, column=2)
        label_cell.font = BOLD_FONT
        label_cell.fill = META_LABEL_FILL
        label_cell.border = THIN_BORDER
        value_cell.font = MUTED_FONT
        value_cell.fill = META_VALUE_FILL
        value_cell.border = THIN_BORDER


def _style_table_region(ws: Worksheet, *, header_row: int, data_end_row: int, status_col: int | None = None) -> None:
    ws.freeze_panes = f"A{header_row + 1}"
    if data_end_row <= header_row:
        return
    ws.auto_filter.ref = f"A{header_row}:{get_column_letter(ws.max_column)}{data_end_row}"

    for row_idx in range(header_row + 1, data_end_row + 1):
        row_fill = ZEBRA_FILL if row_idx % 2 == 0 else None
        if status_col is not None and ws.cell(row=row_idx, column=status_col).value == AttendanceStatus.LATE.value:
            row_fill = WARNING_FILL
        for col_idx in range(1, ws.max_column + 1):
            cell = ws.cell(row=row_idx, column=col_idx)
            cell.border = THIN_BORDER
            if row_fill is not None:
                cell.fill = row_fill
            if isinstance(cell.value, (int, float)):
                cell.alignment = Alignment(horizontal="center", vertical="center")
            else:
                cell.alignment = Alignment(horizontal="left", vertical="center")
            if cell.value == "invalid":
                cell.fill = ALERT_FILL
                cell.font = Font(bold=True, color="9F1239")


def _build_summary_sheet(ws: Worksheet, report: MonthlyReportResponse) -> None:
    ws.title = "Summary"
    _merge_title(ws, 1, f"Monthly attendance {report.month}", width=len(SUMMARY_HEADERS))
    ws.append(["Employees", report.total_employees])
    ws.append(["Attendance records", report.total_attendance])
    ws.append(["Total hours", report.total_hours])
    ws.append(["Average attendance %", report.average_attendance_percent])
    _style_metadata_rows(ws, start_row=2, end_row=5)
    ws.append([])

    header_row = ws.max_row + 1
    ws.append(SUMMARY_HEADERS)
    _style_header(ws, header_row)
    for row in report.rows:
        ws.append(
            [
                row.full_name,
                row.employee_code or "-",
                row.department or "-",
                row.days_present,
                row.late_days,
                row.total_hours,
                row.avg_hours,
            ]
        )
    _style_table_region(ws, header_row=header_row, data_end_row=ws.max_row)
    _auto_width(ws)


def _location_flag(row_valid: bool, lat: float | None) -> str:
    if lat is None:
        return "-"
    return "valid" if row_valid else "invalid"


def _build_detail_sheet(ws: Worksheet, employees: list[Profile], rows: list[Attendance]) -> None:
    names = {employee.id: employee for employee in employees}
    ws.append(DETAIL_HEADERS)
    _style_header(ws, 1)
    for row in rows:
        employee = names.get(row.user_id) or row.user
        check_in_local = _to_excel_datetime(row.check_in)
        check_out_local = _to_excel_datetime(row.check_out)
        hours = None
        if row.check_out is not None:
            hours = round(max(0.0, (row.check_out - row.check_in).total_seconds() / 3600), 2)
        ws.append(
            [
                check_in_local.date() if check_in_local is not None else None,
                employee.full_name if employee is not None else f"#{row.user_id}",
                (employee.employee_code if employee is not None else None) or "-",
                check_in_local.strftime("%H:%M") if check_in_local is not None else "-",
                check_out_local.strftime("%H:%M") if check_out_local is not None else "-",
                hours,
                AttendanceStatus(row.status).value,
                _location_flag(row.check_in_location_valid, row.check_in_lat),
                _location_flag(row.check_out_location_valid, row.check_out_lat),
                row.notes or "",
            ]
        )
    _style_table_region(ws, header_row=1, data_end_row=ws.max_row, status_col=DETAIL_HEADERS.index("Status") + 1)
    _auto_width(ws)


def build_monthly_attendance_xlsx_bytes(db: Session, *, month: str | None) -> tuple[bytes, str]:
    year, month_number = parse_month(month)
    employees, rows = load_month_rows(db, year=year, month=month_number)
    report = summarize_month(employees, rows, year=year, month=month_number)

    wb = Workbook()
    _build_summary_sheet(wb.active, report)
    _build_detail_sheet(wb.create_sheet("Records"), employees, rows)

    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue(), f"attendance_{report.month}.xlsx"
