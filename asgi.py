"""
asgi.py -- Application assembly for Taskboard.

Joins the API with the static mount for uploaded profile images. api/ knows
nothing about serving files from disk; the avatar store only writes them.

Run with:  uvicorn asgi:app --reload
"""

from pathlib import Path

from fastapi.staticfiles import StaticFiles

from api.main import app
from auth.avatars import DEFAULT_URL_PREFIX
from core.config import get_settings

_upload_dir = Path(get_settings().upload_dir)
_upload_dir.mkdir(parents=True, exist_ok=True)

app.mount(DEFAULT_URL_PREFIX, StaticFiles(directory=str(_upload_dir)), name="profile-images")
