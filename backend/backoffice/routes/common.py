# Overview: Shared route helpers; maps domain error kinds to HTTP responses.

from flask import jsonify, request

from ..errors import (
    BackOfficeError,
    ExternalServiceFailure,
    InsufficientStock,
    InvariantViolation,
    NotFound,
    StateConflict,
    ValidationError,
)
from ..time_utils import parse_iso_date

# First match wins; subclasses are covered by their kind.
STATUS_BY_KIND = (
    (ValidationError, 400),
    (NotFound, 404),
    (StateConflict, 409),
    (InsufficientStock, 409),
    (ExternalServiceFailure, 502),
    (InvariantViolation, 500),
)


def status_for(exc: BackOfficeError) -> int:
    for kind, status in STATUS_BY_KIND:
        if isinstance(exc, kind):
            return status
    return 500


def error_response(exc: BackOfficeError):
    return jsonify({
        "error": exc.message,
        "kind": exc.__class__.__name__,
        "details": exc.details,
    }), status_for(exc)


def bad_request(message: str):
    return jsonify({"error": message}), 400


def internal_error():
    return jsonify({"error": "Internal server error"}), 500


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def date_arg(name: str):
    """Optional YYYY-MM-DD query arg; raises ValidationError when malformed."""
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be a date (YYYY-MM-DD)")
