# HEARTH v1.0 - Input validation for API requests
import re

from utils.errors import ValidationError

_APP_NAME = re.compile(r'^[a-z0-9][a-z0-9_-]*$')


def validate_app_name(name):
    '''Validate an app name from a request.
    App names are lowercase: [a-z0-9][a-z0-9_-]*
    Returns the name or raises ValidationError.
    '''
    if not name or not isinstance(name, str):
        raise ValidationError("app is required")

    name = name.strip()

    if len(name) > 64:
        raise ValidationError("App name too long (max 64 chars)")

    # Block path traversal
    if '..' in name or '/' in name or '\\' in name:
        raise ValidationError("Invalid characters in app name")

    if not _APP_NAME.match(name):
        raise ValidationError("App name must start with a letter or digit and contain only a-z, 0-9, _ and -")

    return name


def validate_port(port):
    '''Validate port number. Returns int or raises ValidationError.'''
    try:
        port = int(port)
    except (ValueError, TypeError):
        raise ValidationError("Port must be a number")

    if not (1 <= port <= 65535):
        raise ValidationError("Port must be between 1 and 65535")

    return port


def validate_choices(choices):
    '''Integration choices must map integration names to app names'''
    if choices is None:
        return {}
    if not isinstance(choices, dict):
        raise ValidationError("choices must be an object")

    cleaned = {}
    for integration, provider in choices.items():
        if not isinstance(integration, str) or not re.match(r'^[A-Za-z][A-Za-z0-9_-]*$', integration):
            raise ValidationError(f"Invalid integration name: {integration!r}")
        cleaned[integration] = validate_app_name(provider)
    return cleaned
