"""
Request field coercion shared by the broker and the checker, so both services accept the same bodies.
"""


def field_text(value) -> str | None:
    """
    Stripped text of a body field. Integers are accepted in their decimal form (identifiers sent as
    JSON numbers); booleans, floats, objects and blank strings count as absent.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def is_encodable(value: str) -> bool:
    """False for text that cannot be UTF-8 encoded (lone surrogates from JSON \\ud800 escapes)."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True
