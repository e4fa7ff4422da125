# app/utils/general.py
"""
General-purpose utility functions.

This module contains helpers for service result handling, error sanitization,
client identification and lenient parsing of request values.
"""

from datetime import date, datetime
from flask import jsonify, current_app, request


def _handle_service_result(result, default_error_status=500):
    """
    Parses the result from a service function.
    If it's a tuple (error_dict, status_code), it uses the custom status code.
    Otherwise, it assumes success (status 200, or the '_status' the service set)
    or uses the default error status.

    Adds 'error_code' field to error responses for structured frontend handling.
    """
    # Check if the result is a tuple (error_dict, status_code)
    if isinstance(result, tuple) and len(result) == 2:
        error_dict, status_code = result
        if not error_dict.get("success", True):
            error_dict["error_code"] = error_dict.get("error_code", status_code)
        return jsonify(error_dict), status_code

    if result.get("success"):
        status_code = result.pop("_status", 200)
        return jsonify(result), status_code
    else:
        result["error_code"] = result.get("error_code", default_error_status)
        return jsonify(result), default_error_status


def is_production():
    return current_app.config.get('APP_ENV') == 'production'


def sanitize_error(error, public_message="Internal server error"):
    """
    Returns a client-safe error string.
    Internal details are only exposed outside production.
    """
    if is_production():
        return public_message
    return f"{public_message}: {str(error)}"


def server_error(error, context):
    """Logs an unexpected exception and builds the standard 500 envelope."""
    current_app.logger.error(f"{context}: {str(error)}", exc_info=True)
    return {"success": False, "error": sanitize_error(error)}, 500


def get_client_ip():
    """
    Resolves the caller's IP behind Vercel's proxy.
    Order: first X-Forwarded-For entry, X-Real-IP, remote_addr.
    """
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()
    real_ip = request.headers.get('X-Real-IP')
    if real_ip:
        return real_ip.strip()
    return request.remote_addr or 'unknown'


def get_user_agent():
    return (request.headers.get('User-Agent') or '')[:512]


def parse_date(value):
    """
    Accepts ISO dates (YYYY-MM-DD, optionally with a time part) and the
    MM/DD/YYYY format grants.gov uses. Returns a date, or None for empty input.

    Raises:
        ValueError: If the value is not a recognizable date
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    value = str(value).strip()
    if '/' in value:
        month, day, year = value.split('/')
        return date(int(year), int(month), int(day))
    return date.fromisoformat(value[:10])


def to_bool(value):
    """Query-string friendly boolean ('true', '1', 'yes')."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).lower() in ('true', '1', 'yes')
