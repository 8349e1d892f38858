# ledger/exports.py

"""
Ledger statement export (Excel).

Renders a read-only snapshot of one student's ledger; nothing here writes
to the database.
"""

from io import BytesIO
from django.utils import timezone
import logging

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side

from core.config import resolve_profile
from ledger.balance import audit_entries, summarize
from ledger.utils import from_minor_units

logger = logging.getLogger(__name__)

COLUMNS = ['Date', 'Seq', 'Source', 'Description', 'Reference', 'Debit', 'Credit', 'Balance', 'Dr/Cr']


def build_statement_workbook(student, entries=None, profile=None):
    """
    Build a ledger statement workbook.

    Args:
        student: Student instance
        entries: The student's entries in ledger order; read and verified when omitted
        profile: HostelProfile for currency and minor units

    Returns:
        openpyxl.Workbook
    """
    from ledger.services import LedgerService

    profile = resolve_profile(profile)
    per_major = profile.minor_units_per_major

    if entries is None:
        entries = LedgerService.get_student_ledger(student)
        audit_entries(entries, tolerance=profile.balance_tolerance)

    wb = Workbook()
    ws = wb.active
    ws.title = "Ledger Statement"

    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    header_font = Font(bold=True, color="FFFFFF", size=12)
    header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
    thin = Side(style='thin', color='000000')
    border_style = Border(left=thin, right=thin, top=thin, bottom=thin)

    # Title row
    ws.merge_cells('A1:I1')
    title_cell = ws['A1']
    title_cell.value = f"{profile.name} - Ledger Statement: {student.name}"
    title_cell.font = Font(bold=True, size=16, color="4472C4")
    title_cell.alignment = Alignment(horizontal="center", vertical="center")

    ws.merge_cells('A2:I2')
    ws['A2'].value = (
        f"Generated on: {timezone.now().strftime('%Y-%m-%d %H:%M')} | "
        f"Room: {student.room.room_number if student.room else '-'} | Currency: {profile.currency}"
    )
    ws['A2'].alignment = Alignment(horizontal="center")

    # Header row
    for col_num, column_title in enumerate(COLUMNS, 1):
        cell = ws.cell(row=4, column=col_num, value=column_title)
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = header_alignment
        cell.border = border_style

    row_num = 5
    for entry in entries:
        values = [
            entry.entry_date,
            entry.sequence,
            entry.get_source_display(),
            entry.description,
            entry.reference_id,
            from_minor_units(entry.amount, per_major) if entry.is_debit else None,
            None if entry.is_debit else from_minor_units(entry.amount, per_major),
            from_minor_units(abs(entry.balance_after), per_major),
            'Dr' if entry.balance_after > 0 else 'Cr' if entry.balance_after < 0 else 'Nil',
        ]
        for col_num, value in enumerate(values, 1):
            cell = ws.cell(row=row_num, column=col_num, value=value)
            cell.border = border_style
            if col_num in (6, 7, 8) and value is not None:
                cell.number_format = '#,##0.00'
        row_num += 1

    # Summary
    summary = summarize(entries)
    row_num += 1
    for label, amount in (
        ('Total Debits', summary.total_debits),
        ('Total Credits', summary.total_credits),
        (f"Closing Balance ({summary.balance_type})", summary.absolute_balance),
    ):
        ws.cell(row=row_num, column=7, value=label).font = Font(bold=True)
        cell = ws.cell(row=row_num, column=8, value=from_minor_units(amount, per_major))
        cell.font = Font(bold=True)
        cell.number_format = '#,##0.00'
        row_num += 1

    for column, width in zip('ABCDEFGHI', (12, 6, 18, 40, 22, 14, 14, 14, 8)):
        ws.column_dimensions[column].width = width

    logger.info(f"Built ledger statement for {student.name} with {len(entries)} entries")
    return wb


def statement_bytes(student, entries=None, profile=None):
    """Serialize the statement workbook to bytes for an HTTP response."""
    buffer = BytesIO()
    build_statement_workbook(student, entries, profile=profile).save(buffer)
    return buffer.getvalue()
