"""
Bank transfer file export (``payroll_modules.execution.bank_file``).

Responsibility
--------------
Builds the bank transfer listing for a run (every payslip with positive
net pay) and renders it as a PDF with ReportLab.  The document is
returned as bytes and never persisted.

Layout:
    Header -- company name, "Bank Transfer File", date, Run ID.
    Table  -- Employee Name | Bank Account | Bank Name | Net Pay (<currency>),
              then a TOTAL row.
    Footer -- on every page: a confidentiality line and "Page i of n".
"""

import io
from collections.abc import Iterable, Mapping
from datetime import date
from functools import partial
from uuid import UUID

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from payroll_kernel.db.types import ZERO
from payroll_kernel.logging_config import get_logger
from payroll_modules.execution.config import PayrollExecutionConfig
from payroll_modules.execution.models import BankTransferFile, BankTransferLine, Payslip
from payroll_modules.sources.orm import EmployeeModel

logger = get_logger("modules.payroll.execution.bank_file")

NOT_AVAILABLE = "N/A"
CONFIDENTIAL_NOTICE = "CONFIDENTIAL - FOR BANK USE ONLY"


def build_bank_transfer_file(
    run_id: str,
    payslips: Iterable[Payslip],
    employees: Mapping[UUID, EmployeeModel],
    config: PayrollExecutionConfig,
    generated_on: date,
) -> BankTransferFile:
    """Transfer lines for every payslip with net pay above zero."""
    lines = []
    for payslip in payslips:
        if payslip.net_pay <= 0:
            continue
        employee = employees.get(payslip.employee_id)
        lines.append(BankTransferLine(
            employee_name=employee.full_name if employee else NOT_AVAILABLE,
            bank_account=(employee.bank_account_number if employee else None) or NOT_AVAILABLE,
            bank_name=(employee.bank_name if employee else None) or NOT_AVAILABLE,
            net_pay=payslip.net_pay,
        ))

    return BankTransferFile(
        run_id=run_id,
        company_name=config.company_name,
        currency=config.currency,
        generated_on=generated_on,
        lines=tuple(lines),
        total=sum((line.net_pay for line in lines), ZERO),
    )


def format_amount(amount) -> str:
    return f"{amount:,.2f}"


def footer_lines(page: int, page_count: int, company_name: str) -> tuple[str, str]:
    """The two footer lines drawn on every page."""
    return (
        CONFIDENTIAL_NOTICE,
        f"Page {page} of {page_count} - Generated by {company_name} System",
    )


class NumberedCanvas(canvas.Canvas):
    """Canvas that defers footers until the page count is known."""

    def __init__(self, *args, company_name: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self._company_name = company_name
        self._saved_page_states: list[dict] = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        page_count = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(page_count)
            super().showPage()
        super().save()

    def _draw_footer(self, page_count: int) -> None:
        notice, pages = footer_lines(self._pageNumber, page_count, self._company_name)
        width = self._pagesize[0]
        self.saveState()
        self.setFont("Helvetica", 8)
        self.setFillColor(colors.grey)
        self.drawCentredString(width / 2, 15 * mm, notice)
        self.drawCentredString(width / 2, 10 * mm, pages)
        self.restoreState()


def render_bank_transfer_pdf(transfer: BankTransferFile, compress: bool = True) -> bytes:
    """Render the transfer file as PDF bytes."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=20 * mm,
        leftMargin=20 * mm,
        topMargin=20 * mm,
        bottomMargin=25 * mm,
        title=f"Bank Transfer File {transfer.run_id}",
        pageCompression=1 if compress else 0,
        invariant=1,
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "BankFileTitle",
        parent=styles["Heading1"],
        fontSize=18,
        spaceAfter=6,
    )
    normal_style = styles["Normal"]

    elements = [
        Paragraph(transfer.company_name, title_style),
        Paragraph("Bank Transfer File", styles["Heading2"]),
        Paragraph(f"Date: {transfer.generated_on.strftime('%d/%m/%Y')}", normal_style),
        Paragraph(f"Run ID: {transfer.run_id}", normal_style),
        Spacer(1, 12),
    ]

    data = [["Employee Name", "Bank Account", "Bank Name", f"Net Pay ({transfer.currency})"]]
    for line in transfer.lines:
        data.append([
            line.employee_name,
            line.bank_account,
            line.bank_name,
            format_amount(line.net_pay),
        ])
    data.append(["TOTAL:", "", "", f"{format_amount(transfer.total)} {transfer.currency}"])

    table = Table(data, colWidths=[150, 120, 110, 100], repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1a365d")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (3, 0), (3, -1), "RIGHT"),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("LINEABOVE", (0, -1), (-1, -1), 1, colors.black),
        ("GRID", (0, 0), (-1, -2), 0.5, colors.grey),
        ("ROWBACKGROUNDS", (0, 1), (-1, -2), [colors.white, colors.HexColor("#f8f9fa")]),
    ]))
    elements.append(table)

    doc.build(elements, canvasmaker=partial(NumberedCanvas, company_name=transfer.company_name))

    pdf_bytes = buffer.getvalue()
    buffer.close()

    logger.info(
        "bank_transfer_file_rendered",
        extra={
            "run_id": transfer.run_id,
            "line_count": len(transfer.lines),
            "total": str(transfer.total),
            "size_bytes": len(pdf_bytes),
        },
    )
    return pdf_bytes
