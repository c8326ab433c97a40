"""
CSV report downloads for administrators.
"""

import logging
import re
from datetime import date
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Response, status

from athletes_profile.core.context import ClientContext
from athletes_profile.core.deps import get_admin_user, get_client_context
from athletes_profile.core.platform import PlatformError
from athletes_profile.schemas.auth import AuthUser
from athletes_profile.services.reports import ReportData, ReportType, build_report

router = APIRouter(prefix="/reports", tags=["Reports"])
logger = logging.getLogger(__name__)


def content_disposition(filename: str) -> str:
    """
    Attachment header for a report filename that may hold admin-typed folder names.

    filename= carries an ASCII-only fallback; filename*= the exact UTF-8 name (RFC 6266).
    """
    fallback = re.sub(r"[^A-Za-z0-9._-]", "_", filename)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


async def _load_report_data(context: ClientContext) -> ReportData:
    athletes = context.athletes
    return ReportData(
        users=await athletes.list_users(),
        files=await athletes.list_files(),
        folders=await athletes.list_folders(),
        student_folders=await athletes.list_student_folders(),
        announcements=await athletes.list_announcements(),
    )


@router.get("/{report_type}")
async def download_report(
    report_type: ReportType,
    start: Optional[date] = None,
    end: Optional[date] = None,
    sport_folder_id: Optional[str] = None,
    context: ClientContext = Depends(get_client_context),
    admin: AuthUser = Depends(get_admin_user),
):
    """
    Export one report as CSV.

    Args:
        report_type: athletes, files, folders, announcements or verification
        start: Only rows created on or after this date
        end: Only rows created on or before this date
        sport_folder_id: Restrict the folders report to one sport folder

    Raises:
        HTTPException 400: If start is after end
        HTTPException 502: If the platform data could not be loaded
    """
    if start and end and start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Start date must be before end date"
        )

    try:
        data = await _load_report_data(context)
    except PlatformError as e:
        logger.error(f"Failed to load data for {report_type.value} report: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e)
        )

    report = build_report(report_type, data, start, end, sport_folder_id)
    logger.info(f"Admin {admin.id} exported {report.filename}")
    return Response(
        content=report.content,
        media_type="text/csv",
        headers={"Content-Disposition": content_disposition(report.filename)},
    )
