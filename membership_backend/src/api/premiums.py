"""
Premium table endpoints.

- Import the loan-amount x year premium grid from an Excel workbook (admin)
- Look up the premium for a loan amount and term, falling back to the next higher bracket
"""

import math
import zipfile
from io import BytesIO
from typing import Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, File, Query, UploadFile
from loguru import logger
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy.orm import Session

from src.api.auth import get_db, role_required
from src.api.errors import InvalidInputError, NotFoundError
from src.api.models import Premium, User, utcnow
from src.api.openapi_schemas import APIResponse, ErrorResponse
from src.api.schemas import PremiumImportResult, PremiumQuote

router = APIRouter(prefix="/api/premium", tags=["Premiums"])

EXCEL_CONTENT_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _as_number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    return None if math.isnan(number) else number


# PUBLIC_INTERFACE
def parse_premium_rows(rows) -> List[Tuple[float, int, int]]:
    """
    Flatten a premium grid into (loan_amount, year, premium_amount) entries.

    The first row is a header. Column 0 holds the loan amount and column i the
    premium for a term of i years. Non-numeric or blank cells are skipped.
    """
    entries = []
    for index, row in enumerate(rows):
        if index == 0 or not row:
            continue
        loan_amount = _as_number(row[0])
        if loan_amount is None:
            continue
        for year, cell in enumerate(row[1:], start=1):
            premium = _as_number(cell)
            if premium is None:
                continue
            entries.append((loan_amount, year, round_half_up(premium)))
    return entries


# PUBLIC_INTERFACE
def upsert_premiums(db: Session, entries: List[Tuple[float, int, int]]) -> PremiumImportResult:
    """Insert or update premiums keyed by (loan_amount, year) and report what changed."""
    latest: Dict[Tuple[float, int], int] = {}
    for loan_amount, year, premium in entries:
        latest[(loan_amount, year)] = premium

    years = {year for _, year in latest}
    existing = {
        (row.loan_amount, row.year): row
        for row in db.query(Premium).filter(Premium.year.in_(years)).all()
        if (row.loan_amount, row.year) in latest
    }

    modified = 0
    upserted = 0
    for (loan_amount, year), premium in latest.items():
        row = existing.get((loan_amount, year))
        if row is None:
            db.add(Premium(loan_amount=loan_amount, year=year, premium_amount=premium))
            upserted += 1
        elif row.premium_amount != premium:
            row.premium_amount = premium
            row.updated_at = utcnow()
            modified += 1
    db.commit()

    return PremiumImportResult(
        modified=modified,
        upserted=upserted,
        total=len(entries),
        existing=len(existing),
        new=len(entries) - len(existing),
    )


def find_premium(db: Session, loan_amount: float, year: int) -> Optional[Premium]:
    """Exact (loan_amount, year) row, else the smallest higher loan amount for that year."""
    premium = (
        db.query(Premium)
        .filter(Premium.loan_amount == loan_amount, Premium.year == year)
        .first()
    )
    if premium is None:
        premium = (
            db.query(Premium)
            .filter(Premium.loan_amount > loan_amount, Premium.year == year)
            .order_by(Premium.loan_amount.asc())
            .first()
        )
    return premium

# =============================
# ENDPOINTS
# =============================

# PUBLIC_INTERFACE
@router.post("/import", response_model=APIResponse, responses={400: {"model": ErrorResponse}}, summary="Import premium table", description="Admin only. Upload an .xlsx workbook: loan amounts in column A, one column per year.")
def import_premiums(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin")),
):
    if file.content_type not in EXCEL_CONTENT_TYPES and not (file.filename or "").lower().endswith(".xlsx"):
        raise InvalidInputError("Please upload an Excel file")
    try:
        workbook = load_workbook(BytesIO(file.file.read()), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError):
        raise InvalidInputError("Please upload an Excel file")
    try:
        sheet = workbook.worksheets[0]
        entries = parse_premium_rows(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()

    if not entries:
        raise InvalidInputError("No valid data found in the Excel file")

    result = upsert_premiums(db, entries)
    logger.info(
        "Premium import by {}: {} entries, {} new rows, {} modified",
        current_user.email, result.total, result.upserted, result.modified,
    )
    return APIResponse(
        success=True,
        message="Premium data updated successfully" if result.existing else "Premium data imported successfully",
        data=result,
    )

# PUBLIC_INTERFACE
@router.get("", response_model=APIResponse, responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}, summary="Look up premium")
def get_premium(
    loan_amount: Optional[float] = Query(None, description="Requested loan amount"),
    year: Optional[int] = Query(None, description="Cover term in years"),
    db: Session = Depends(get_db),
):
    """
    Returns the premium for the exact loan amount, or for the next higher
    loan amount on the table when there is no exact row.
    """
    if loan_amount is None or year is None:
        raise InvalidInputError("Loan amount and year are required")
    premium = find_premium(db, loan_amount, year)
    if premium is None:
        raise NotFoundError("Premium data not found for the given loan amount and year")
    return APIResponse(
        success=True,
        data=PremiumQuote(
            requested_loan_amount=loan_amount,
            actual_loan_amount=premium.loan_amount,
            year=premium.year,
            premium_amount=premium.premium_amount,
            is_exact_match=premium.loan_amount == loan_amount,
        ),
    )
