"""
Namespace routing

A namespace is a logical partition of the backend (a tenant, an environment).
It travels with the call context instead of being passed to every method:

    with with_namespace("tenant-a"):
        store.save(events, 0)      # writes to <prefix>tenant-a

Each namespace maps one-to-one to a physical table, so namespaces never see
each other's data. Code running outside ``with_namespace`` uses
``DEFAULT_NAMESPACE``.
"""

import re
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from .exceptions import ValidationError

DEFAULT_NAMESPACE = "default"

_TABLE_NAME_PATTERN = re.compile(r'[a-zA-Z0-9_.-]{3,255}')

_current_namespace: ContextVar[Optional[str]] = ContextVar("eventhorizon_namespace", default=None)


def namespace_from_context() -> str:
    """Return the namespace bound to the current context, or the default."""
    return _current_namespace.get() or DEFAULT_NAMESPACE


@contextmanager
def with_namespace(namespace: Optional[str]) -> Iterator[str]:
    """Bind ``namespace`` for the duration of the block.

    Nested blocks shadow outer ones; the previous value is restored on exit.
    Threads started inside the block do not inherit it unless the caller copies
    the context (``contextvars.copy_context``).
    """
    token = _current_namespace.set(namespace or None)
    try:
        yield namespace_from_context()
    finally:
        _current_namespace.reset(token)


class NamespaceRouter:
    """Derives the physical table name of a namespace: ``prefix + namespace``."""

    def __init__(self, prefix: str):
        self.prefix = prefix

    def table_name(self, namespace: Optional[str] = None) -> str:
        """Resolve the table for ``namespace``, defaulting to the context namespace.

        Raises:
            ValidationError: If the result is not a valid DynamoDB table name
        """
        if not namespace:
            namespace = namespace_from_context()
        name = f"{self.prefix}{namespace}"
        if not _TABLE_NAME_PATTERN.fullmatch(name):
            raise ValidationError(
                f"namespace '{namespace}' does not produce a valid table name",
                errors={'table_name': name},
                namespace=namespace,
            )
        return name

    def __repr__(self) -> str:
        return f"NamespaceRouter(prefix={self.prefix!r})"
