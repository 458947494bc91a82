"""
Request bodies for routes that take either JSON or multipart forms.

Multipart is only needed when a file is attached; otherwise clients send the
same fields as a JSON object.
"""
import json
from typing import Any, Dict, Optional

from fastapi import Request

from errors import ValidationFailed


def is_json(request: Request) -> bool:
    content_type = request.headers.get("content-type", "")
    return content_type.split(";")[0].strip().lower() == "application/json"


async def json_body(request: Request) -> Optional[Dict[str, Any]]:
    """The JSON object sent with the request, or None for form submissions."""
    if not is_json(request):
        return None
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        raise ValidationFailed("Request body is not valid JSON")
    if not isinstance(body, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return body


def pick(body: Optional[Dict[str, Any]], form: Dict[str, Any]) -> Dict[str, Any]:
    """Fields from the JSON body when one was sent, else from the form."""
    if body is None:
        return form
    return {name: body.get(name) for name in form}


def missing(*values) -> bool:
    return any(value is None or (isinstance(value, str) and not value.strip()) for value in values)
