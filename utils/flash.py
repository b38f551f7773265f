# utils/flash.py
from fastapi import Request

FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def is_form_request(request: Request) -> bool:
    ctype = request.headers.get("content-type", "")
    return request.method == "POST" and ctype.split(";")[0].strip() in FORM_TYPES


def flash(request: Request, category: str, message: str) -> None:
    if "session" not in request.scope:
        return
    request.session.setdefault("_flashes", []).append([category, message])


def pop_flashes(request: Request) -> list[tuple[str, str]]:
    if "session" not in request.scope:
        return []
    return [tuple(f) for f in request.session.pop("_flashes", [])]
