"""
Excel audit export for the reconciliation trail.
Creates a multi-sheet workbook from stats, records and pending transactions.
"""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional
import logging

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Border, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..config import ReconConfig
from ..models.transaction import (
    BankTransaction,
    MatchType,
    ReconciliationRecord,
    ReconciliationStats,
)
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
AUTO_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
VARIANCE_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
UNMATCHED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

RECORD_HEADERS = [
    "Reconciled At",
    "Transaction ID",
    "Receivable",
    "Kind",
    "Client ID",
    "Transaction Amount",
    "Receivable Amount",
    "Variance",
    "Match Type",
    "Score",
    "Validated By",
    "Reasons",
]


class ExcelReportGenerator:
    """Generates the reconciliation audit workbook."""

    def __init__(self, config: Optional[ReconConfig] = None):
        self.config = config or ReconConfig()
        self.sheet_config = self.config.output.sheets

    def generate_report(
        self,
        stats: ReconciliationStats,
        records: list[ReconciliationRecord],
        unmatched: list[BankTransaction],
        output_path: Path,
    ) -> Path:
        """
        Write the audit workbook.

        Args:
            stats: Current reconciliation stats
            records: Reconciliation records to list
            unmatched: Transactions still pending
            output_path: Destination .xlsx file

        Returns:
            Path to the generated workbook

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        logger.info(f"Generating Excel audit report: {output_path}")

        wb = Workbook()
        if wb.active:
            wb.remove(wb.active)

        sheets = self.sheet_config
        if sheets.summary.enabled:
            self._create_summary_sheet(wb, stats, records)
        if sheets.reconciliations.enabled:
            self._create_records_sheet(wb, sheets.reconciliations.name, records)
        if sheets.variances.enabled:
            variance_records = [r for r in records if r.variance != 0]
            self._create_records_sheet(
                wb, sheets.variances.name, variance_records, fill=VARIANCE_FILL
            )
        if sheets.unmatched.enabled:
            self._create_unmatched_sheet(wb, unmatched)

        if not wb.sheetnames:
            raise ReportGenerationError("All report sheets are disabled")

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            raise ReportGenerationError(f"Cannot write {output_path}: {e}") from e

        logger.info(f"Report saved: {output_path}")
        return output_path

    def _create_summary_sheet(
        self,
        wb: Workbook,
        stats: ReconciliationStats,
        records: list[ReconciliationRecord],
    ) -> None:
        """Create the summary sheet with key metrics."""
        ws = wb.create_sheet(self.sheet_config.summary.name)

        ws["A1"] = "Bank Reconciliation Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        ws["A3"] = "Generated At:"
        ws["B3"] = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        ws["A4"] = "Config File:"
        ws["B4"] = self.config.config_file_path or "Default"

        ws["A6"] = "Transactions"
        ws["A6"].font = Font(bold=True)

        count_data = [
            ("Total Transactions:", stats.total_transactions),
            ("Reconciled:", stats.reconciled_count),
            ("Unmatched:", stats.unmatched_count),
            ("Ignored:", stats.ignored_count),
            ("Reconciliation Rate:", f"{stats.reconciliation_rate:.1f}%"),
        ]
        for i, (label, value) in enumerate(count_data, start=7):
            ws[f"A{i}"] = label
            ws[f"B{i}"] = value

        ws["A13"] = "Amounts"
        ws["A13"].font = Font(bold=True)

        total_variance = sum((r.variance for r in records), Decimal("0"))
        amount_data = [
            ("Reconciled Amount:", float(stats.reconciled_amount)),
            ("Pending Amount:", float(stats.unmatched_amount)),
            ("Total Variance:", float(total_variance)),
        ]
        for i, (label, value) in enumerate(amount_data, start=14):
            ws[f"A{i}"] = label
            ws[f"B{i}"] = value
            ws[f"B{i}"].number_format = "#,##0.00"

        ws["A18"] = "Matches by Type"
        ws["A18"].font = Font(bold=True)
        for i, match_type in enumerate(MatchType, start=19):
            ws[f"A{i}"] = match_type.value
            ws[f"B{i}"] = sum(1 for r in records if r.match_type == match_type)

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 40

    def _create_records_sheet(
        self,
        wb: Workbook,
        sheet_name: str,
        records: list[ReconciliationRecord],
        fill: Optional[PatternFill] = None,
    ) -> None:
        """Create a sheet listing reconciliation records."""
        ws = wb.create_sheet(sheet_name)
        self._write_headers(ws, RECORD_HEADERS)

        for row_num, record in enumerate(records, start=2):
            row_data = [
                record.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                record.transaction_id,
                record.receivable_id,
                "invoice" if record.invoice_id else "delivery",
                record.client_id,
                float(record.transaction_amount),
                float(record.receivable_amount),
                float(record.variance),
                record.match_type.value,
                f"{record.confidence_score:.2f}",
                record.validated_by or "",
                record.reasons,
            ]

            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                if fill is not None:
                    cell.fill = fill
                elif record.match_type == MatchType.AUTOMATIC:
                    cell.fill = AUTO_FILL

        self._auto_fit_columns(ws)

    def _create_unmatched_sheet(self, wb: Workbook, unmatched: list[BankTransaction]) -> None:
        """Create the pending transactions sheet."""
        ws = wb.create_sheet(self.sheet_config.unmatched.name)
        headers = ["Date", "Value Date", "Bank Reference", "Amount", "Currency", "Type", "Label"]
        self._write_headers(ws, headers)

        for row_num, txn in enumerate(unmatched, start=2):
            row_data = [
                txn.date,
                txn.value_date or "",
                txn.bank_reference or "",
                float(txn.amount),
                txn.currency,
                txn.type.value,
                txn.label,
            ]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                cell.fill = UNMATCHED_FILL

        self._auto_fit_columns(ws)

    def _write_headers(self, ws: Worksheet, headers: list[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            column = column_cells[0].column_letter
            max_length = max(
                (len(str(cell.value)) for cell in column_cells if cell.value is not None),
                default=0,
            )
            ws.column_dimensions[column].width = min(max_length + 2, 50)
