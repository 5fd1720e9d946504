"""Public URLs for images stored in R2 and served under /images."""

from typing import Optional
from urllib.parse import urlencode

from opendots.config import settings


def get_image_url(key: str, width: Optional[int] = None, height: Optional[int] = None) -> str:
    url = f"{settings.public_app_url.rstrip('/')}/images/{key}"
    params = {}
    if width:
        params["width"] = width
    if height:
        params["height"] = height
    if params:
        url += f"?{urlencode(params)}"
    return url
