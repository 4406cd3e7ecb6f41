from __future__ import annotations
from typing import Any, Dict
from flask import request
from medspa.errors import ValidationError


def json_body() -> Dict[str, Any]:
    """Request JSON object; an absent body is an empty object, anything else non-object is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('JSON object body required')
    return data
