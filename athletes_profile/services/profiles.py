"""
Profile row helpers shared by registration, sign-in and the student dashboard.

Handles:
- Writing the extended registration columns onto the users row
- ID picture upload (immediate, or staged client-side until the account is usable)
- Profile picture upload
"""

import logging
import time
from typing import Optional

from athletes_profile.core.config import settings
from athletes_profile.core.platform import PlatformClient, PlatformError
from athletes_profile.core.preferences import SessionPolicyStore, StagedPicture
from athletes_profile.schemas.registration import FileUpload, RegistrationDraft

logger = logging.getLogger(__name__)


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"


class ProfileService:
    """Writes to the users table and the picture buckets on behalf of one client."""

    def __init__(self, platform: PlatformClient, policy: SessionPolicyStore):
        self.platform = platform
        self.policy = policy

    async def enrich_profile(self, user_id: str, draft: RegistrationDraft) -> None:
        """
        Write the extended registration columns onto the new users row.

        Raises:
            PlatformError: if the update is rejected
        """
        await self.platform.table("users").update(draft.profile_columns()).eq("id", user_id).execute()

    async def upload_id_picture(self, user_id: str, student_id: str, filename: str, content_type: str, content: bytes) -> str:
        """
        Upload an ID picture and record its public URL on the profile.

        Returns:
            str: public URL of the uploaded picture

        Raises:
            PlatformError: if the upload is rejected
        """
        file_path = f"id-pictures/{int(time.time() * 1000)}-{student_id}.{_extension(filename)}"
        bucket = self.platform.bucket(settings.ATHLETE_FILES_BUCKET)
        await bucket.upload(
            file_path, content,
            content_type=content_type,
            upsert=False,
            cache_control=settings.STORAGE_CACHE_CONTROL,
        )
        public_url = bucket.get_public_url(file_path)

        try:
            await self.platform.table("users").update({"id_picture_url": public_url}).eq("id", user_id).execute()
        except PlatformError as e:
            # The object is stored; only the pointer is missing
            logger.error(f"Error updating user {user_id} with ID picture URL: {e}")

        return public_url

    def stage_id_picture(self, draft: RegistrationDraft) -> None:
        """Keep the ID picture client-side so it can be uploaded after confirmation."""
        picture = draft.id_picture
        if picture is None:
            return
        self.policy.stage_id_picture(StagedPicture(
            filename=picture.filename,
            content_type=picture.content_type,
            content=picture.content,
            student_id=draft.student_id.strip(),
        ))

    async def upload_staged_id_picture(self, user_id: str) -> Optional[str]:
        """
        Upload a staged ID picture, if any, and clear it on success.

        Best-effort: failures are logged and the staged picture is kept for the next sign-in.
        """
        staged = self.policy.staged_id_picture()
        if staged is None:
            return None

        try:
            url = await self.upload_id_picture(user_id, staged.student_id, staged.filename, staged.content_type, staged.content)
        except PlatformError as e:
            logger.error(f"Deferred ID picture upload failed for user {user_id}: {e}")
            return None

        self.policy.clear_staged_id_picture()
        logger.info(f"Deferred ID picture uploaded for user {user_id}")
        return url

    async def upload_profile_picture(self, user_id: str, file: FileUpload) -> str:
        """
        Upload (overwrite) a user's profile picture and store its public URL.

        Raises:
            PlatformError: if the upload or the profile update is rejected
        """
        file_path = f"{user_id}/{user_id}.{file.extension}"
        bucket = self.platform.bucket(settings.PROFILE_PICTURES_BUCKET)
        await bucket.upload(
            file_path, file.content,
            content_type=file.content_type,
            upsert=True,
            cache_control=settings.STORAGE_CACHE_CONTROL,
        )
        public_url = bucket.get_public_url(file_path)
        await self.platform.table("users").update({"profile_picture_url": public_url}).eq("id", user_id).execute()
        return public_url
