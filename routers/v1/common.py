# routers/v1/common.py
import json
from pathlib import Path

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError as SchemaError

from errors import ValidationError
from utils.flash import flash, is_form_request
from utils.pieces import extract_size_map

API_PREFIX = "/api/v1"
TEMPLATES_DIR = Path(__file__).resolve().parents[2] / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


async def read_payload(request: Request) -> dict:
    """JSON body or submitted form, as a plain dict."""
    if is_form_request(request):
        form = await request.form()
        return {k: v for k, v in form.items()}
    body = await request.body()
    if not body:
        return {}
    try:
        data = json.loads(body)
    except ValueError:
        raise ValidationError("Request body is not valid JSON") from None
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def parse_body(model, data: dict, size_fields: tuple[str, ...] = ("sizes",)):
    data = dict(data)
    for f in size_fields:
        if f in model.model_fields:
            sizes = extract_size_map(data, f)
            if sizes or f in data:
                data[f] = sizes
    for key, value in list(data.items()):
        if isinstance(value, str) and value == "" and key not in size_fields:
            data[key] = None
    try:
        return model.model_validate(data)
    except SchemaError as e:
        err = e.errors()[0]
        where = ".".join(str(p) for p in err.get("loc", ()))
        raise ValidationError(f"{where}: {err.get('msg')}" if where else err.get("msg")) from None


def back_to(request: Request, default: str) -> str:
    return request.headers.get("referer") or default


def respond(request: Request, message: str, payload: dict, redirect_to: str):
    """Redirect with a flash for form posts, JSON for everything else."""
    if is_form_request(request):
        flash(request, "success", message)
        return RedirectResponse(back_to(request, redirect_to), status_code=303)
    return JSONResponse(jsonable_encoder(payload))
