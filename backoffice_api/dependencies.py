"""
Shared FastAPI dependencies and response helpers for the route modules.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Header

from config_manager import get_config


@dataclass
class UploadSettings:
    """Where uploaded documents go and how large they may be."""
    directory: Path
    max_size_mb: int

    @property
    def max_size_bytes(self) -> int:
        return self.max_size_mb * 1024 * 1024


def get_upload_settings() -> UploadSettings:
    """FastAPI dependency for the upload limits from the `api` config section."""
    config = get_config()
    return UploadSettings(
        directory=Path(config.api.upload_directory),
        max_size_mb=config.api.max_upload_size_mb,
    )


def get_user_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-ID")) -> Optional[str]:
    """Acting user for the audit trail, taken from the optional X-User-ID header."""
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


def success_response(
    data: Any = None,
    message: Optional[str] = None,
    count: Optional[int] = None
) -> Dict[str, Any]:
    """Build the {success: true, data, count?, message?} envelope."""
    body: Dict[str, Any] = {"success": True, "data": data}
    if count is not None:
        body["count"] = count
    if message:
        body["message"] = message
    return body
