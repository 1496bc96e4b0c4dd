from .builder import (
    QueryMixin,
    build_delete,
    build_insert,
    build_select,
    build_update,
    quote_identifier,
)

__all__ = (
    "QueryMixin",
    "build_delete",
    "build_insert",
    "build_select",
    "build_update",
    "quote_identifier",
)
