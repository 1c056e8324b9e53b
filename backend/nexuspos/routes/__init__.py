# Overview: Helpers shared by the JSON blueprints.

from flask import request

from ..errors import ValidationError
from ..time_utils import parse_iso_datetime


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def query_datetime(name: str):
    """Parse an ISO-8601 query parameter; a malformed value is a 400."""
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError as exc:
        raise ValidationError(f"{name} must be an ISO-8601 datetime") from exc


def require_fields(data: dict, *names: str) -> None:
    missing = [name for name in names if data.get(name) is None]
    if missing:
        raise ValidationError([f"{name} is required" for name in missing])
