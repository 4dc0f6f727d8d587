# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Backend-neutral condition translation."""

from unidb.query.translator import (
    DocumentQuery,
    SqlFragment,
    build_select,
    quote_identifier,
    translate,
    translate_document,
    translate_sql,
)
