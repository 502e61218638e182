"""
Session Manager Factory for the Concierge Agent

Creates the Strands SessionManager that keeps a concierge conversation's
history between requests. Storage backend comes from settings:
- SESSION_STORAGE_TYPE: "file" (default) or "s3"
- SESSION_STORAGE_DIR: Directory for file storage (default: ./.sessions)
- SESSION_S3_BUCKET / SESSION_S3_PREFIX: S3 location when storage type is s3
"""
import logging
import re
from typing import Optional

from strands.session import FileSessionManager, S3SessionManager, SessionManager

from ..config import settings
from ..exceptions import ValidationError

logger = logging.getLogger(__name__)

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def validate_session_id(session_id: str) -> str:
    """
    Session ids become directory and key names, so only a safe alphabet is accepted.

    Raises:
        ValidationError: If the id contains anything else
    """
    if not _SESSION_ID_PATTERN.match(session_id or ""):
        raise ValidationError("Invalid session id", details={"session_id": session_id})
    return session_id


def create_session_manager(
    session_id: str,
    storage_dir: Optional[str] = None,
    storage_type: Optional[str] = None
) -> SessionManager:
    """
    Create a SessionManager for the given concierge session.

    Args:
        session_id: Conversation identifier
        storage_dir: Override directory for file storage
        storage_type: Override storage type ("file" or "s3")

    Returns:
        FileSessionManager or S3SessionManager

    Storage Structure (File):
        ./.sessions/
        └── session_<id>/
            ├── session.json
            └── agents/<agent_id>/messages/message_<n>.json
    """
    validate_session_id(session_id)
    storage_type = (storage_type or settings.session_storage_type).lower()

    if storage_type == "s3":
        if settings.session_s3_bucket:
            logger.info(
                f"Creating S3 session manager: session_id={session_id}, "
                f"bucket={settings.session_s3_bucket}, prefix={settings.session_s3_prefix}"
            )
            return S3SessionManager(
                session_id=session_id,
                bucket=settings.session_s3_bucket,
                prefix=settings.session_s3_prefix,
                region_name=settings.aws_region
            )
        logger.warning("SESSION_S3_BUCKET not set, falling back to file storage")

    storage_dir = storage_dir or settings.session_storage_dir
    logger.debug(f"Creating file session manager: session_id={session_id}, storage_dir={storage_dir}")
    return FileSessionManager(
        session_id=session_id,
        storage_dir=storage_dir
    )
