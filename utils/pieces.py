# utils/pieces.py
import math

from errors import ValidationError


def parse_pieces(value, *, strict: bool) -> int:
    """
    Piece counts arrive as strings from forms and as numbers from JSON.
    strict=True  -> non-integers and negatives raise ValidationError
    strict=False -> anything unusable becomes 0
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0
    try:
        if isinstance(value, float):
            if math.isnan(value) or not value.is_integer():
                raise ValueError(value)
            n = int(value)
        else:
            n = int(str(value).strip())
    except (TypeError, ValueError):
        if strict:
            raise ValidationError(f"Invalid pieces value: {value!r}") from None
        return 0
    if n < 0:
        if strict:
            raise ValidationError(f"Pieces cannot be negative: {n}")
        return 0
    return n


def extract_size_map(data: dict, field: str = "sizes") -> dict:
    """
    {"sizes": {"S": 10}} from JSON bodies, or flat ``sizes[S]=10`` form keys.
    """
    nested = data.get(field)
    if isinstance(nested, dict):
        return dict(nested)
    prefix = f"{field}["
    out = {}
    for key, value in data.items():
        key = str(key)
        if key.startswith(prefix) and key.endswith("]"):
            out[key[len(prefix):-1]] = value
    return out
