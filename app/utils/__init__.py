# app/utils/__init__.py
"""
Utility functions package.

- general.py: result handling, error sanitization, request helpers
"""

# Import commonly used utilities for convenient access
from .general import _handle_service_result, sanitize_error, server_error
from .general import get_client_ip, get_user_agent, parse_date, to_bool

__all__ = [
    '_handle_service_result',
    'sanitize_error',
    'server_error',
    'get_client_ip',
    'get_user_agent',
    'parse_date',
    'to_bool',
]
