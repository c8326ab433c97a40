"""
Dashboard endpoints for administrators and students.

Administrators manage sport folders, announcements and student verification.
Students keep exactly one subfolder and upload their documents into it.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from athletes_profile.core.context import ClientContext
from athletes_profile.core.deps import get_admin_user, get_client_context, get_current_user
from athletes_profile.core.platform import PlatformError
from athletes_profile.schemas.athletes import (
    Announcement,
    AnnouncementCreate,
    AnnouncementUpdate,
    Folder,
    FolderCreate,
    PictureResponse,
    StoredFile,
    StudentFolder,
    SubfolderCreate,
    SubfolderRename,
    UserProfile,
    VerificationUpdate,
)
from athletes_profile.schemas.auth import AuthUser
from athletes_profile.schemas.registration import FileUpload, Role
from athletes_profile.services.athletes import (
    AthleteServiceError,
    NotVerifiedError,
    RecordNotFoundError,
)

router = APIRouter(prefix="/athletes", tags=["Athletes"])
logger = logging.getLogger(__name__)


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, RecordNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, NotVerifiedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, AthleteServiceError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    logger.error(f"Dashboard platform call failed: {e}")
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


async def _to_upload(file: UploadFile) -> FileUpload:
    return FileUpload(
        filename=file.filename or "upload",
        content_type=file.content_type or "application/octet-stream",
        content=await file.read(),
    )


# Profile

@router.get("/me", response_model=UserProfile)
async def get_my_profile(
    context: ClientContext = Depends(get_client_context),
    user: AuthUser = Depends(get_current_user),
):
    try:
        return await context.athletes.get_profile(user.id)
    except (AthleteServiceError, PlatformError) as e:
        raise _http_error(e)


@router.post("/me/profile-picture", response_model=PictureResponse)
async def upload_profile_picture(
    file: UploadFile = File(...),
    context: ClientContext = Depends(get_client_context),
    user: AuthUser = Depends(get_current_user),
):
    """Replace the signed-in user's profile picture."""
    upload = await _to_upload(file)
    if not upload.content_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Profile picture must be an image"
        )
    try:
        url = await context.profiles.upload_profile_picture(user.id, upload)
    except PlatformError as e:
        raise _http_error(e)
    return PictureResponse(url=url)


# Students (admin)

@router.get("/students", response_model=List[UserProfile])
async def list_students(
    context: ClientContext = Depends(get_client_context),
    admin: AuthUser = Depends(get_admin_user),
):
    try:
        return await context.athletes.list_students()
    except PlatformError as e:
        raise _http_error(e)


@router.patch("/students/{user_id}/verification", response_model=UserProfile)
async def set_student_verification(
    user_id: str,
    request: VerificationUpdate,
    context: ClientContext = Depends(get_client_context),
    admin: AuthUser = Depends(get_admin_user),
):
    """Verify or un-verify a student. Unverified students cannot create folders or upload."""
    try:
        profile = await context.athletes.set_verification(user_id, request.is_verified)
    except (AthleteServiceError, PlatformError) as e:
        raise _http_error(e)
    logger.info(f"Admin {admin.id} set verification of {user_id} to {request.is_verified}")
    return profile


# Sport folders

@router.get("/folders", response_model=List[Folder])
async def list_folders(
    context: ClientContext = Depends(get_client_context),
    user: AuthUser = Depends(get_current_user),
):
    try:
        return await context.athletes.list_folders()
    except PlatformError as e:
        raise _http_error(e)


@router.post("/folders", response_model=Folder, status_code=status.HTTP_201_CREATED)
async def create_folder(
    request: FolderCreate,
    context: ClientContext = Depends(get_client_context),
    admin: AuthUser = Depends(get_admin_user),
):
    try:
        return await context.athletes.create_folder(admin.id, request.name, request.description, request.color)
    except PlatformError as e:
        raise _http_error(e)


@router.delete("/folders/{folder_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_folder(
    folder_id: str,
    context: ClientContext = Depends(get_client_context),
    admin: AuthUser = Depends(get_admin_user),
):
    try:
        await context.athletes.delete_folder(folder_id)
    except PlatformError as e:
        raise _http_error(e)


# Student subfolders

@router.get("/subfolders", response_model=List[StudentFolder])
async def list_subfolders(
    sport_folder_id: Optional[str] = None,
    context: ClientContext = Depends(get_client_context),
    admin: AuthUser = Depends(get_admin_user),
):
    try:
        return await context.athletes.list_student_folders(sport_folder_id)
    except PlatformError as e:
        raise _http_error(e)


@router.get("/subfolders/mine", response_model=Optional[StudentFolder])
async def get_my_subfolder(
    context: ClientContext = Depends(get_client_context),
    user: AuthUser = Depends(get_current_user),
):
    try:
        return await context.athletes.get_own_subfolder(user.id)
    except PlatformError as e:
        raise _http_error(e)


@router.post("/subfolders", response_model=StudentFolder, status_code=status.HTTP_201_CREATED)
async def create_subfolder(
    request: SubfolderCreate,
    context: ClientContext = Depends(get_client_context),
    user: AuthUser = Depends(get_current_user),
):
    """
    Create the student's subfolder in a sport folder.

    Raises:
        HTTPException 403: student not verified yet
        HTTPException 400: student already has a subfolder
    """
    try:
        return await context.athletes.create_subfolder(user.id, request.sport_folder_id, request.name)
    except (AthleteServiceError, PlatformError) as e:
        raise _http_error(e)


@router.patch("/subfolders/{subfolder_id}", response_model=StudentFolder)
async def rename_subfolder(
    subfolder_id: str,
    request: SubfolderRename,
    context: ClientContext = Depends(get_client_context),
    user: AuthUser = Depends(get_current_user),
):
    try:
        return await context.athletes.rename_subfolder(user.id, subfolder_id, request.name)
    except (AthleteServiceError, PlatformError) as e:
        raise _http_error(e)


@router.delete("/subfolders/{subfolder_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_subfolder(
    subfolder_id: str,
    context: ClientContext = Depends(get_client_context),
    user: AuthUser = Depends(get_current_user),
):
    try:
        await context.athletes.delete_subfolder(user.id, subfolder_id)
    except (AthleteServiceError, PlatformError) as e:
        raise _http_error(e)


# Files

@router.get("/files", response_model=List[StoredFile])
async def list_files(
    context: ClientContext = Depends(get_client_context),
    user: AuthUser = Depends(get_current_user),
):
    """Administrators see every file; students see the files in their own subfolder."""
    try:
        if user.role.lower() == Role.ADMIN.value:
            return await context.athletes.list_files()
        subfolder = await context.athletes.get_own_subfolder(user.id)
        return await context.athletes.list_files([subfolder.id] if subfolder else [])
    except PlatformError as e:
        raise _http_error(e)


@router.post("/subfolders/{subfolder_id}/files", response_model=StoredFile, status_code=status.HTTP_201_CREATED)
async def upload_file(
    subfolder_id: str,
    file: UploadFile = File(...),
    context: ClientContext = Depends(get_client_context),
    user: AuthUser = Depends(get_current_user),
):
    upload = await _to_upload(file)
    try:
        return await context.athletes.upload_file(user.id, subfolder_id, upload)
    except (AthleteServiceError, PlatformError) as e:
        raise _http_error(e)


# Announcements

@router.get("/announcements", response_model=List[Announcement])
async def list_announcements(
    context: ClientContext = Depends(get_client_context),
    user: AuthUser = Depends(get_current_user),
):
    try:
        return await context.athletes.list_announcements()
    except PlatformError as e:
        raise _http_error(e)


@router.post("/announcements", response_model=Announcement, status_code=status.HTTP_201_CREATED)
async def create_announcement(
    request: AnnouncementCreate,
    context: ClientContext = Depends(get_client_context),
    admin: AuthUser = Depends(get_admin_user),
):
    try:
        return await context.athletes.create_announcement(admin.id, request.title, request.content)
    except PlatformError as e:
        raise _http_error(e)


@router.patch("/announcements/{announcement_id}", response_model=Announcement)
async def update_announcement(
    announcement_id: str,
    request: AnnouncementUpdate,
    context: ClientContext = Depends(get_client_context),
    admin: AuthUser = Depends(get_admin_user),
):
    try:
        return await context.athletes.update_announcement(announcement_id, request.title, request.content)
    except (AthleteServiceError, PlatformError) as e:
        raise _http_error(e)


@router.delete("/announcements/{announcement_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_announcement(
    announcement_id: str,
    context: ClientContext = Depends(get_client_context),
    admin: AuthUser = Depends(get_admin_user),
):
    try:
        await context.athletes.delete_announcement(announcement_id)
    except PlatformError as e:
        raise _http_error(e)
