"""Request payload validation.

Rules are plain dicts keyed by field name, e.g.::

    {'latitude': {'type': 'number', 'required': True, 'min': -90, 'max': 90}}

Supported keys: type (string, number, integer, boolean, email, uuid, object, array),
required, default, min, max (numeric range), min_length, max_length,
choices, fields (nested rules for objects).
"""
import math
import re
import uuid

from flask import request

from .errors import ApiError, ValidationError

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

_MISSING = object()


def get_json_body():
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ApiError(400, 'Request body must be a JSON object')
    return data


def _check(value, rule):
    kind = rule.get('type', 'string')

    if kind == 'number':
        if isinstance(value, bool):
            return None, 'must be a number'
        if not isinstance(value, (int, float)):
            try:
                value = float(value)
            except (TypeError, ValueError):
                return None, 'must be a number'
        if not math.isfinite(value):
            return None, 'must be a number'
    elif kind == 'integer':
        if isinstance(value, bool):
            return None, 'must be an integer'
        try:
            if isinstance(value, float) and not value.is_integer():
                raise ValueError
            value = int(value)
        except (TypeError, ValueError):
            return None, 'must be an integer'
    elif kind == 'boolean':
        if isinstance(value, str) and value.lower() in ('true', 'false'):
            value = value.lower() == 'true'
        elif not isinstance(value, bool):
            return None, 'must be a boolean'
    elif kind == 'object':
        if not isinstance(value, dict):
            return None, 'must be an object'
        if 'fields' in rule:
            nested, errors = validate(value, rule['fields'], raise_errors=False)
            if errors:
                return None, errors
            value = nested
    elif kind == 'array':
        if not isinstance(value, list):
            return None, 'must be an array'
    else:
        if not isinstance(value, str):
            return None, 'must be a string'
        value = value.strip()
        if kind == 'email' and not EMAIL_RE.match(value):
            return None, 'must be a valid email'
        if kind == 'uuid':
            try:
                value = uuid.UUID(value)
            except ValueError:
                return None, 'must be a valid uuid'

    if kind in ('number', 'integer'):
        if 'min' in rule and value < rule['min']:
            return None, f"must be greater than or equal to {rule['min']}"
        if 'max' in rule and value > rule['max']:
            return None, f"must be less than or equal to {rule['max']}"
    if kind in ('string', 'email'):
        if 'min_length' in rule and len(value) < rule['min_length']:
            return None, f"length must be at least {rule['min_length']} characters long"
        if 'max_length' in rule and len(value) > rule['max_length']:
            return None, f"length must be less than or equal to {rule['max_length']} characters long"
    if 'choices' in rule and value not in rule['choices']:
        return None, f"must be one of [{', '.join(rule['choices'])}]"
    return value, None


def validate(data, rules, raise_errors=True):
    """Return (cleaned, errors); raises ValidationError instead when raise_errors is set."""
    cleaned = {}
    errors = {}
    for field, rule in rules.items():
        value = data.get(field, _MISSING)
        if value is _MISSING or value is None or value == '':
            if rule.get('required'):
                errors[field] = 'is required'
            elif 'default' in rule:
                cleaned[field] = rule['default']
            continue
        value, error = _check(value, rule)
        if error:
            errors[field] = error
        else:
            cleaned[field] = value

    if errors and raise_errors:
        raise ValidationError(errors)
    return (cleaned, errors) if not raise_errors else cleaned


def validate_json(rules):
    return validate(get_json_body(), rules)


def validate_args(rules):
    return validate(request.args.to_dict(), rules)


# --- Shared rule sets ---

LATITUDE = {'type': 'number', 'min': -90, 'max': 90}
LONGITUDE = {'type': 'number', 'min': -180, 'max': 180}


def pagination(default_limit):
    return validate_args({
        'limit': {'type': 'integer', 'min': 1, 'max': 1000, 'default': default_limit},
        'offset': {'type': 'integer', 'min': 0, 'default': 0},
    })
