"""
CSV reports for the admin dashboard.

Every cell is quoted, rows are newline-separated and a header row is always
present, even when the (optionally date-filtered) collection is empty.
"""

import csv
import enum
import io
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

from athletes_profile.schemas.athletes import Announcement, Folder, StoredFile, StudentFolder, UserProfile
from athletes_profile.schemas.registration import Role

T = TypeVar("T")


class ReportType(str, enum.Enum):
    ATHLETES = "athletes"
    FILES = "files"
    FOLDERS = "folders"
    ANNOUNCEMENTS = "announcements"
    VERIFICATION = "verification"


@dataclass
class ReportData:
    """In-memory collections the reports are derived from."""
    users: List[UserProfile] = field(default_factory=list)
    files: List[StoredFile] = field(default_factory=list)
    folders: List[Folder] = field(default_factory=list)
    student_folders: List[StudentFolder] = field(default_factory=list)
    announcements: List[Announcement] = field(default_factory=list)

    @property
    def students(self) -> List[UserProfile]:
        return [u for u in self.users if (u.role or "").lower() == Role.STUDENT.value]


@dataclass(frozen=True)
class Report:
    filename: str
    content: str


def format_file_size(size: int) -> str:
    if not size:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def _date(value: Optional[datetime]) -> str:
    return value.date().isoformat() if value else ""


def _within(items: Iterable[T], created_at: Callable[[T], Optional[datetime]], start: Optional[date], end: Optional[date]) -> List[T]:
    if start is None and end is None:
        return list(items)
    selected = []
    for item in items:
        created = created_at(item)
        if created is None:
            continue
        day = created.date()
        if (start is None or day >= start) and (end is None or day <= end):
            selected.append(item)
    return selected


def to_csv(headers: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if cell is None else cell for cell in row])
    return buffer.getvalue().rstrip("\n")


def _status(user: UserProfile) -> str:
    return "Verified" if user.is_verified else "Pending"


def athletes_csv(data: ReportData, start: Optional[date] = None, end: Optional[date] = None) -> str:
    students = _within(data.students, lambda u: u.created_at, start, end)
    return to_csv(
        ["Full Name", "Email", "Student ID", "Sport", "Course", "Year Level", "Phone", "Status", "Verified", "Created Date"],
        (
            [u.full_name, u.email, u.student_id, u.sport, u.course, u.year_level, u.phone,
             _status(u), "Yes" if u.is_verified else "No", _date(u.created_at)]
            for u in students
        ),
    )


def files_csv(data: ReportData, start: Optional[date] = None, end: Optional[date] = None) -> str:
    files = _within(data.files, lambda f: f.created_at, start, end)
    return to_csv(
        ["Original Name", "File Size", "MIME Type", "Uploaded By", "Folder", "Created Date"],
        (
            [f.original_name, format_file_size(f.file_size), f.mime_type, f.uploaded_by,
             f.folder_id or f.student_folder_id or "N/A", _date(f.created_at)]
            for f in files
        ),
    )


def folders_csv(
    data: ReportData,
    start: Optional[date] = None,
    end: Optional[date] = None,
    sport_folder_id: Optional[str] = None,
) -> str:
    folders = [f for f in data.folders if sport_folder_id is None or f.id == sport_folder_id]
    folders = _within(folders, lambda f: f.created_at, start, end)

    rows = []
    for folder in folders:
        subfolders = [sf for sf in data.student_folders if sf.sport_folder_id == folder.id]
        subfolder_ids = {sf.id for sf in subfolders}
        total_files = sum(
            1 for f in data.files
            if f.folder_id == folder.id or (f.student_folder_id and f.student_folder_id in subfolder_ids)
        )
        rows.append([
            folder.name, folder.description or "", folder.created_by or "N/A",
            len(subfolders), total_files, _date(folder.created_at), folder.color or "N/A",
        ])

    return to_csv(
        ["Folder Name", "Description", "Created By", "Total Subfolders", "Total Files", "Created Date", "Color"],
        rows,
    )


def announcements_csv(data: ReportData, start: Optional[date] = None, end: Optional[date] = None) -> str:
    announcements = _within(data.announcements, lambda a: a.created_at, start, end)
    return to_csv(
        ["Title", "Content", "Created Date"],
        ([a.title, a.content, _date(a.created_at)] for a in announcements),
    )


def verification_csv(data: ReportData, start: Optional[date] = None, end: Optional[date] = None) -> str:
    students = _within(data.students, lambda u: u.created_at, start, end)
    return to_csv(
        ["Full Name", "Email", "Student ID", "Sport", "Verification Status", "Verified Date", "Created Date"],
        (
            [u.full_name, u.email, u.student_id, u.sport, _status(u),
             _date(u.created_at) if u.is_verified else "N/A", _date(u.created_at)]
            for u in students
        ),
    )


def build_report(
    report_type: ReportType,
    data: ReportData,
    start: Optional[date] = None,
    end: Optional[date] = None,
    sport_folder_id: Optional[str] = None,
    today: Optional[date] = None,
) -> Report:
    """Render one report and its dated download filename."""
    stamp = (today or date.today()).isoformat()

    if report_type == ReportType.ATHLETES:
        return Report(f"athletes_report_{stamp}.csv", athletes_csv(data, start, end))
    if report_type == ReportType.FILES:
        return Report(f"files_report_{stamp}.csv", files_csv(data, start, end))
    if report_type == ReportType.FOLDERS:
        folder_name = "all"
        if sport_folder_id:
            match = next((f for f in data.folders if f.id == sport_folder_id), None)
            folder_name = "_".join(match.name.split()) if match else "all"
        return Report(f"folders_report_{folder_name}_{stamp}.csv", folders_csv(data, start, end, sport_folder_id))
    if report_type == ReportType.ANNOUNCEMENTS:
        return Report(f"announcements_report_{stamp}.csv", announcements_csv(data, start, end))
    return Report(f"verification_report_{stamp}.csv", verification_csv(data, start, end))
