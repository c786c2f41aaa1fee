"""
Router package for the annotation server.

Routers:
- tracks.py: Next-track resolution and track lookup
- annotations.py: Annotation commits
- progress.py: Progress cursor reporting
- media.py: Signed media downloads
"""

from .tracks import router as tracks_router
from .annotations import router as annotations_router
from .progress import router as progress_router
from .media import router as media_router

__all__ = [
    "tracks_router",
    "annotations_router",
    "progress_router",
    "media_router",
]
