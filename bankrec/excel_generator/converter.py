"""Excel review workbooks for parsed statements and their reconciliation state."""

import os
from datetime import datetime
from typing import Any, List, Optional, Sequence

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.utils.dataframe import dataframe_to_rows

from bankrec.config.settings import EXCEL_OUTPUT_FORMAT, REPORTS_DIR
from bankrec.reconciliation.states import StatementLine
from bankrec.statement_processor.summarizer import StatementSummary
from bankrec.utils.exceptions import StatementError, ValidationError
from bankrec.utils.logger import get_logger
from bankrec.utils.validators import validate_directory_path

TRANSACTION_COLUMNS = ["Date", "Description", "Reference", "Debit", "Credit", "Balance"]
AMOUNT_COLUMNS = {"Debit", "Credit", "Balance", "Amount"}


class ExcelConversionError(StatementError):
    """Raised when a review workbook cannot be written."""

    kind = "export_error"


class StatementExcelConverter:
    """Writes parsed statements to Excel for review."""

    def __init__(self) -> None:
        """Initialize Excel converter."""
        self.logger = get_logger(__name__)

        self.header_font = Font(bold=True, color="FFFFFF")
        self.header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        self.header_alignment = Alignment(horizontal="center", vertical="center")

        self.amount_format = "#,##0.00"
        self.date_format = "YYYY-MM-DD"

    def generate_filename(
        self,
        base_name: str,
        suffix: Optional[str] = None,
        timestamp: bool = True
    ) -> str:
        """Generate Excel filename with timestamp.

        Args:
            base_name: Base filename.
            suffix: Optional suffix to add.
            timestamp: Whether to include timestamp.

        Returns:
            Generated filename.
        """
        parts = [base_name]
        if suffix:
            parts.append(suffix.replace(" ", "_").lower())
        if timestamp:
            parts.append(datetime.now().strftime("%Y%m%d_%H%M%S"))
        return f"{'_'.join(parts)}.{EXCEL_OUTPUT_FORMAT}"

    def transactions_to_dataframe(self, summary: StatementSummary) -> pd.DataFrame:
        """Convert statement transactions to a DataFrame in statement order."""
        data = [
            {
                "Date": pd.Timestamp(t.date),
                "Description": t.description,
                "Reference": t.reference,
                "Debit": float(t.debit_amount),
                "Credit": float(t.credit_amount),
                "Balance": float(t.balance) if t.balance is not None else None,
            }
            for t in summary.transactions
        ]
        return pd.DataFrame(data, columns=TRANSACTION_COLUMNS)

    def lines_to_dataframe(self, lines: Sequence[StatementLine]) -> pd.DataFrame:
        data = [
            {
                "Line": line.id,
                "Date": pd.Timestamp(line.transaction_date),
                "Description": line.description,
                "Amount": float(line.amount),
                "Direction": "credit" if line.is_credit else "debit",
                "Status": line.reconciliation_status.value,
                "Entry": line.matched_entry_id,
                "Needs Review": "yes" if line.needs_review else "",
            }
            for line in lines
        ]
        return pd.DataFrame(data)

    def write_table_sheet(self, workbook: Workbook, frame: pd.DataFrame, sheet_name: str) -> None:
        """Write a DataFrame as a styled table sheet.

        Args:
            workbook: Excel workbook object.
            frame: Data to write.
            sheet_name: Name for the sheet.
        """
        worksheet = workbook.create_sheet(title=sheet_name)
        headers = list(frame.columns)
        for col_num, header in enumerate(headers, 1):
            self._style_header(worksheet.cell(row=1, column=col_num, value=header))

        for row_num, row in enumerate(dataframe_to_rows(frame, index=False, header=False), 2):
            for col_num, value in enumerate(row, 1):
                if isinstance(value, float) and pd.isna(value):
                    value = None
                cell = worksheet.cell(row=row_num, column=col_num, value=value)
                if isinstance(value, datetime):
                    cell.number_format = self.date_format
                elif headers[col_num - 1] in AMOUNT_COLUMNS and isinstance(value, (int, float)):
                    cell.number_format = self.amount_format

        self._autosize(worksheet)
        self.logger.info(f"Created {sheet_name} sheet with {len(frame)} rows")

    def create_summary_sheet(
        self,
        workbook: Workbook,
        summary: StatementSummary,
        sheet_name: str = "Summary"
    ) -> None:
        worksheet = workbook.create_sheet(title=sheet_name, index=0)

        title_cell = worksheet.cell(row=1, column=1, value="Bank Statement Summary")
        title_cell.font = Font(bold=True, size=16)
        worksheet.merge_cells(start_row=1, start_column=1, end_row=1, end_column=3)

        rows = [
            ("Period", summary.period or "N/A"),
            ("Start Date", summary.start_date.isoformat()),
            ("End Date", summary.end_date.isoformat()),
            ("Currency", summary.currency),
            ("Transactions", summary.transaction_count),
            ("Opening Balance", float(summary.opening_balance)),
            ("Total Debits", float(summary.total_debits)),
            ("Total Credits", float(summary.total_credits)),
            ("Closing Balance", float(summary.closing_balance)),
            ("Net Movement", float(summary.net_movement)),
        ]
        for offset, (label, value) in enumerate(rows):
            row = offset + 3
            worksheet.cell(row=row, column=1, value=f"{label}:").font = Font(bold=True)
            cell = worksheet.cell(row=row, column=2, value=value)
            if isinstance(value, float):
                cell.number_format = self.amount_format

        self._autosize(worksheet)

    def create_statement_workbook(
        self,
        summary: StatementSummary,
        output_path: Optional[str] = None,
        filename: Optional[str] = None,
        lines: Optional[List[StatementLine]] = None
    ) -> str:
        """Create a review workbook for one statement.

        Args:
            summary: Parsed statement.
            output_path: Optional output directory path.
            filename: Optional filename for output file.
            lines: Persisted lines; adds a Reconciliation sheet when given.

        Returns:
            Path to created Excel file.

        Raises:
            ExcelConversionError: If creation fails.
        """
        try:
            output_path = output_path or REPORTS_DIR
            validate_directory_path(output_path)

            if filename is None:
                filename = self.generate_filename("statement", summary.period or None)
            if not filename.endswith(f".{EXCEL_OUTPUT_FORMAT}"):
                filename = f"{filename}.{EXCEL_OUTPUT_FORMAT}"
            full_path = os.path.join(output_path, filename)

            workbook = Workbook()
            workbook.remove(workbook.active)

            self.create_summary_sheet(workbook, summary)
            self.write_table_sheet(workbook, self.transactions_to_dataframe(summary), "Transactions")
            if lines:
                self.write_table_sheet(workbook, self.lines_to_dataframe(lines), "Reconciliation")

            workbook.save(full_path)
            workbook.close()

            self.logger.info(f"Statement workbook created successfully: {full_path}")
            return full_path

        except ValidationError as e:
            raise ExcelConversionError(f"Validation error: {e.message}")
        except Exception as e:
            raise ExcelConversionError(f"Failed to create statement workbook: {str(e)}")

    def _style_header(self, cell: Any) -> None:
        cell.font = self.header_font
        cell.fill = self.header_fill
        cell.alignment = self.header_alignment

    def _autosize(self, worksheet: Any) -> None:
        for col_idx in range(1, worksheet.max_column + 1):
            max_length = 0
            for row_idx in range(1, worksheet.max_row + 1):
                value = worksheet.cell(row=row_idx, column=col_idx).value
                if value is not None:
                    max_length = max(max_length, len(str(value)))
            worksheet.column_dimensions[get_column_letter(col_idx)].width = min(max_length + 2, 50)
