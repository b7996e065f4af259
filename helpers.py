"""
Shared helpers used across blueprints.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import jsonify, request

from db_stores import NotFoundError, StaleWriteError
from rank_rules import PromotionError, UnknownBeltError


class BadRequest(ValueError):
    """Malformed request body or query string."""


def json_body() -> dict[str, Any]:
    """The request's JSON object, or BadRequest."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    return data


def require_int(data: dict[str, Any], key: str, minimum: int | None = None) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise BadRequest(f"'{key}' must be an integer")
    if minimum is not None and value < minimum:
        raise BadRequest(f"'{key}' must be >= {minimum}")
    return value


def rank_errors_as_json(f: Callable) -> Callable:
    """Translate rank/storage errors raised by a view into JSON error responses."""
    @wraps(f)
    def decorated(*args: Any, **kwargs: Any) -> Any:
        try:
            return f(*args, **kwargs)
        except NotFoundError as e:
            return jsonify({"error": str(e)}), 404
        except UnknownBeltError as e:
            return jsonify({"error": str(e)}), 404
        except (StaleWriteError, PromotionError) as e:
            return jsonify({"error": str(e)}), 409
        except ValueError as e:  # includes ConfigurationError and BadRequest
            return jsonify({"error": str(e)}), 400
    return decorated
