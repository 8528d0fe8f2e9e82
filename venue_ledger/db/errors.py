"""
Helpers for reading constraint names out of driver IntegrityErrors.
"""

from sqlalchemy.exc import IntegrityError


def violated_constraint(exc: IntegrityError, *names: str) -> bool:
    """
    True if the error was raised by one of the named constraints.

    SQLite reports columns ("UNIQUE constraint failed: table.col") instead of
    constraint names, so callers pass both forms.
    """
    orig = getattr(exc, "orig", None)
    constraint_name = getattr(orig, "constraint_name", None) or ""
    diag = getattr(orig, "diag", None)
    if not constraint_name and diag is not None:
        constraint_name = getattr(diag, "constraint_name", "") or ""

    text = str(orig if orig is not None else exc)
    return any(name == constraint_name or name in text for name in names)
