from bestball.errors import AuthorizationError, ValidationError

# Upper bound for gross strokes and handicap strokes on a single hole
MAX_STROKES = 99


def require_privileged(privileged: bool) -> None:
    if not privileged:
        raise AuthorizationError()


def require_int(value, field, minimum=None, maximum=None, optional=False):
    """Coerce a client-supplied integer field or raise ``ValidationError``."""
    if value is None or value == '':
        if optional:
            return None
        raise ValidationError(f'{field} is required')
    # bool is an int subclass; True is never a stroke count
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer')
    if isinstance(value, float) and number != value:
        raise ValidationError(f'{field} must be an integer')
    if minimum is not None and number < minimum:
        raise ValidationError(f'{field} must be at least {minimum}')
    if maximum is not None and number > maximum:
        raise ValidationError(f'{field} must be at most {maximum}')
    return number
