"""
Dashboard operations over the athlete tables.

Thin reads and writes against users, folders, student_folders, files and
announcements. The one business rule enforced here is that a student owns at
most one subfolder across all sport folders, and only once an administrator has
verified them.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from athletes_profile.core.config import settings
from athletes_profile.core.platform import PlatformClient
from athletes_profile.schemas.athletes import Announcement, Folder, StoredFile, StudentFolder, UserProfile
from athletes_profile.schemas.registration import FileUpload, Role

logger = logging.getLogger(__name__)


class AthleteServiceError(Exception):
    """Base exception for dashboard business-rule violations."""
    pass


class RecordNotFoundError(AthleteServiceError):
    """Requested row does not exist or is not visible to this user."""
    pass


class NotVerifiedError(AthleteServiceError):
    """Student has not been verified by an administrator yet."""
    pass


class SubfolderLimitError(AthleteServiceError):
    """Student already owns a subfolder."""
    pass


class InvalidRequestError(AthleteServiceError):
    """Input rejected before reaching the platform."""
    pass


class AthleteService:
    def __init__(self, platform: PlatformClient):
        self.platform = platform

    # Users

    async def get_profile(self, user_id: str) -> UserProfile:
        rows = await self.platform.table("users").select("*").eq("id", user_id).execute()
        if not rows:
            raise RecordNotFoundError("User not found")
        return UserProfile.model_validate(rows[0])

    async def list_users(self) -> List[UserProfile]:
        rows = await self.platform.table("users").select("*").order("created_at", desc=True).execute()
        return [UserProfile.model_validate(row) for row in rows or []]

    async def list_students(self) -> List[UserProfile]:
        users = await self.list_users()
        return [u for u in users if (u.role or "").lower() == Role.STUDENT.value]

    async def set_verification(self, user_id: str, is_verified: bool) -> UserProfile:
        rows = await (
            self.platform.table("users")
            .update({"is_verified": is_verified})
            .eq("id", user_id)
            .select("*")
            .execute()
        )
        if not rows:
            raise RecordNotFoundError("User not found")
        logger.info(f"User {user_id} verification set to {is_verified}")
        return UserProfile.model_validate(rows[0])

    # Sport folders

    async def list_folders(self) -> List[Folder]:
        rows = await self.platform.table("folders").select("*").order("created_at", desc=True).execute()
        return [Folder.model_validate(row) for row in rows or []]

    async def create_folder(self, created_by: str, name: str, description: Optional[str] = None, color: Optional[str] = None) -> Folder:
        payload: Dict[str, Any] = {
            "name": name.strip(),
            "description": description or None,
            "created_by": created_by,
            "is_public": True,
        }
        if color:
            payload["color"] = color
        rows = await self.platform.table("folders").insert(payload).select("*").execute()
        return Folder.model_validate(rows[0])

    async def delete_folder(self, folder_id: str) -> None:
        await self.platform.table("folders").delete().eq("id", folder_id).execute()

    # Student subfolders

    async def list_student_folders(self, sport_folder_id: Optional[str] = None) -> List[StudentFolder]:
        query = self.platform.table("student_folders").select("*")
        if sport_folder_id:
            query = query.eq("sport_folder_id", sport_folder_id)
        rows = await query.order("created_at", desc=True).execute()
        return [StudentFolder.model_validate(row) for row in rows or []]

    async def get_own_subfolder(self, user_id: str) -> Optional[StudentFolder]:
        rows = await self.platform.table("student_folders").select("*").eq("student_id", user_id).execute()
        return StudentFolder.model_validate(rows[0]) if rows else None

    async def _require_verified(self, user_id: str) -> None:
        profile = await self.get_profile(user_id)
        if not profile.is_verified:
            raise NotVerifiedError("You must be verified by an administrator first")

    async def _owned_subfolder(self, user_id: str, subfolder_id: str) -> StudentFolder:
        rows = await self.platform.table("student_folders").select("*").eq("id", subfolder_id).execute()
        if not rows or rows[0].get("student_id") != user_id:
            raise RecordNotFoundError("Subfolder not found")
        return StudentFolder.model_validate(rows[0])

    async def create_subfolder(self, user_id: str, sport_folder_id: str, name: str) -> StudentFolder:
        """
        Create the student's subfolder inside a sport folder.

        Raises:
            NotVerifiedError: student not verified yet
            SubfolderLimitError: student already has a subfolder (in any sport folder)
        """
        if not name.strip():
            raise InvalidRequestError("Subfolder name cannot be empty")
        await self._require_verified(user_id)
        if await self.get_own_subfolder(user_id):
            raise SubfolderLimitError("You can only have one subfolder. Please delete your existing subfolder first.")

        rows = await self.platform.table("student_folders").insert({
            "name": name.strip(),
            "student_id": user_id,
            "sport_folder_id": sport_folder_id,
        }).select("*").execute()
        logger.info(f"Subfolder created for student {user_id} in sport folder {sport_folder_id}")
        return StudentFolder.model_validate(rows[0])

    async def rename_subfolder(self, user_id: str, subfolder_id: str, name: str) -> StudentFolder:
        if not name.strip():
            raise InvalidRequestError("Subfolder name cannot be empty")
        await self._owned_subfolder(user_id, subfolder_id)
        rows = await (
            self.platform.table("student_folders")
            .update({"name": name.strip()})
            .eq("id", subfolder_id)
            .select("*")
            .execute()
        )
        return StudentFolder.model_validate(rows[0])

    async def delete_subfolder(self, user_id: str, subfolder_id: str) -> None:
        """Delete the subfolder's file rows, then the subfolder itself."""
        await self._owned_subfolder(user_id, subfolder_id)
        await self.platform.table("files").delete().eq("student_folder_id", subfolder_id).execute()
        await self.platform.table("student_folders").delete().eq("id", subfolder_id).execute()
        logger.info(f"Subfolder {subfolder_id} deleted by student {user_id}")

    # Files

    async def list_files(self, student_folder_ids: Optional[List[str]] = None) -> List[StoredFile]:
        query = self.platform.table("files").select("*")
        if student_folder_ids is not None:
            if not student_folder_ids:
                return []
            query = query.in_("student_folder_id", student_folder_ids)
        rows = await query.order("created_at", desc=True).execute()
        return [StoredFile.model_validate(row) for row in rows or []]

    async def upload_file(self, user_id: str, subfolder_id: str, upload: FileUpload) -> StoredFile:
        """
        Store a document in the student's own subfolder.

        Raises:
            NotVerifiedError: student not verified yet
            RecordNotFoundError: subfolder missing or owned by someone else
        """
        await self._require_verified(user_id)
        await self._owned_subfolder(user_id, subfolder_id)

        file_name = f"{int(time.time() * 1000)}.{upload.extension}"
        file_path = f"{user_id}/{file_name}"
        await self.platform.bucket(settings.ATHLETE_FILES_BUCKET).upload(
            file_path, upload.content,
            content_type=upload.content_type,
            cache_control=settings.STORAGE_CACHE_CONTROL,
        )

        rows = await self.platform.table("files").insert({
            "name": file_name,
            "original_name": upload.filename,
            "file_path": file_path,
            "file_size": len(upload.content),
            "mime_type": upload.content_type,
            "student_folder_id": subfolder_id,
            "uploaded_by": user_id,
        }).select("*").execute()
        logger.info(f"File {file_path} uploaded by student {user_id}")
        return StoredFile.model_validate(rows[0])

    # Announcements

    async def list_announcements(self) -> List[Announcement]:
        rows = await self.platform.table("announcements").select("*").order("created_at", desc=True).execute()
        return [Announcement.model_validate(row) for row in rows or []]

    async def create_announcement(self, created_by: str, title: str, content: str) -> Announcement:
        rows = await self.platform.table("announcements").insert({
            "title": title.strip(),
            "content": content.strip(),
            "created_by": created_by,
        }).select("*").execute()
        return Announcement.model_validate(rows[0])

    async def update_announcement(self, announcement_id: str, title: Optional[str] = None, content: Optional[str] = None) -> Announcement:
        changes = {k: v.strip() for k, v in (("title", title), ("content", content)) if v is not None}
        if not changes:
            raise InvalidRequestError("Nothing to update")
        rows = await (
            self.platform.table("announcements")
            .update(changes)
            .eq("id", announcement_id)
            .select("*")
            .execute()
        )
        if not rows:
            raise RecordNotFoundError("Announcement not found")
        return Announcement.model_validate(rows[0])

    async def delete_announcement(self, announcement_id: str) -> None:
        await self.platform.table("announcements").delete().eq("id", announcement_id).execute()
