import secrets
from typing import Optional

from fastapi import Depends, Header

from ..config import Settings, get_settings
from ..exceptions import UnauthorizedError


def require_admin(
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
    app_settings: Settings = Depends(get_settings),
) -> None:
    """Guard for booking management endpoints. Open when ADMIN_API_KEY is empty."""
    if not app_settings.admin_api_key:
        return
    if not x_admin_key or not secrets.compare_digest(x_admin_key, app_settings.admin_api_key):
        raise UnauthorizedError("Admin key required")
