import json
import logging
from typing import Any

from fastapi import Request

logger = logging.getLogger(__name__)


async def read_body(request: Request) -> dict[str, Any]:
    """
    Read a JSON or form-encoded body into a dict.

    The display sends JSON for the login flow and form data for the token
    request. Anything unparseable is treated as an empty body.
    """
    content_type = request.headers.get("content-type", "")
    try:
        if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
            form = await request.form()
            return {key: value for key, value in form.items() if isinstance(value, str)}
        raw = await request.body()
        if not raw:
            return {}
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        logger.debug(f"Ignoring unparseable request body: {e}")
        return {}
    return data if isinstance(data, dict) else {}
