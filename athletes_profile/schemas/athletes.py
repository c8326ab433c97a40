"""
Pydantic schemas for rows of the platform tables used by the dashboards.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UserProfile(BaseModel):
    """Row of `users`: the credential augmented with athlete details."""
    id: str
    email: str = ""
    role: str = "student"
    full_name: str = ""
    student_id: Optional[str] = None
    phone: Optional[str] = None
    course: Optional[str] = None
    year_level: Optional[str] = None
    sport: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    title: Optional[str] = None
    profile_picture_url: Optional[str] = None
    id_picture_url: Optional[str] = None
    is_verified: Optional[bool] = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Folder(BaseModel):
    """Sport folder shared by administrators."""
    id: str
    name: str
    description: Optional[str] = None
    created_by: Optional[str] = None
    parent_folder_id: Optional[str] = None
    is_public: bool = True
    color: Optional[str] = None
    created_at: Optional[datetime] = None


class StudentFolder(BaseModel):
    """A student's own subfolder inside a sport folder."""
    id: str
    name: str
    description: Optional[str] = None
    student_id: str
    sport_folder_id: Optional[str] = None
    created_at: Optional[datetime] = None


class StoredFile(BaseModel):
    """Row of `files` pointing at an object in the athlete-files bucket."""
    id: str
    name: str
    original_name: str
    file_path: str
    file_size: int = 0
    mime_type: str = ""
    folder_id: Optional[str] = None
    student_folder_id: Optional[str] = None
    uploaded_by: Optional[str] = None
    created_at: Optional[datetime] = None


class Announcement(BaseModel):
    id: str
    title: str
    content: str
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


class VerificationUpdate(BaseModel):
    is_verified: bool


class FolderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    color: Optional[str] = None


class SubfolderCreate(BaseModel):
    sport_folder_id: str
    name: str = Field(..., min_length=1, max_length=200)


class SubfolderRename(BaseModel):
    name: str


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


class AnnouncementUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None


class PictureResponse(BaseModel):
    url: str
