"""
Media router.

Serves objects from the local object store to holders of a signed URL.

Endpoints:
- GET /api/media/{token} - Download the object a signed token grants
"""

import mimetypes

from fastapi import APIRouter
from fastapi.responses import FileResponse

from ..errors import ObjectNotFoundError

router = APIRouter(prefix="/api/media", tags=["media"])


@router.get("/{token}")
def get_media(token: str):
    """
    Stream a signed object.

    Returns 403 for tampered or expired tokens and 404 if the object
    no longer exists.
    """
    from ..api import get_state

    store = get_state().store
    if not hasattr(store, "verify_token"):
        raise ObjectNotFoundError("Media not served by this store")

    key = store.verify_token(token)
    path = store.path_for(key)
    if not path.is_file():
        raise ObjectNotFoundError(f"Media not found: {key}")

    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileResponse(str(path), media_type=media_type)
