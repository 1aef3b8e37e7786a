"""Small helpers shared by blueprints and services."""

import json

from flask import request


def first_value(value):
    """Normalize a single value or a list of values to the first one.

    Query strings and headers can repeat a key; callers only ever care
    about the first occurrence. Returns None for None or an empty list.
    """
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _json_default(obj):
    for attr in ("to_dict", "to_dict_recursive"):
        to_dict = getattr(obj, attr, None)
        if callable(to_dict):
            return to_dict()
    return str(obj)


def to_json(value):
    """Round-trip a value through JSON so it can be stored in a JSON column.

    Stripe objects, nested dicts and lists come out as plain Python
    structures. Newer stripe releases no longer subclass dict, so every
    SDK response is passed through here before .get() is used on it.
    None passes through unchanged.
    """
    if value is None:
        return None
    return json.loads(json.dumps(value, default=_json_default))


def object_id(value):
    """Return the id of a Stripe reference that may be a bare id or expanded.

    e.g. session["payment_intent"] is "pi_123" normally but a full
    PaymentIntent when the field was expanded.
    """
    if not value:
        return None
    if isinstance(value, str):
        return value
    return value.get("id")


def to_minor_units(value, default=0):
    """Parse an integer amount from Stripe metadata (always strings)."""
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def request_json():
    """Decoded JSON object body of the current request, or {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def isoformat(value):
    return value.isoformat() if value else None
