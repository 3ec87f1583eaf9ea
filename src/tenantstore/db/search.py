# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Free-text search normalisation for PostgreSQL full-text queries."""

import re
from urllib.parse import unquote_to_bytes

from beartype import beartype

_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _query_unescape(text: str) -> str:
    """Decode a query-string value, rejecting malformed escapes."""
    if _BAD_ESCAPE.search(text):
        raise ValueError(f"invalid URL escape in {text!r}")
    return unquote_to_bytes(text.replace("+", " ")).decode("utf-8")


@beartype
def format_search(search_text: str) -> str:
    """Turn user search input into a prefix-matching ``tsquery`` expression.

    ``"john.smith@acme"`` becomes ``"john:* & smith:* & acme:*"``. Input that
    fails URL decoding is used as-is with ``%20`` read as a separator. The
    result is not escaped: bind it as a parameter to ``to_tsquery``, never
    splice it into SQL.
    """
    if not search_text:
        return ""

    try:
        text = _query_unescape(search_text)
    except ValueError:
        text = search_text.replace("%20", " ")

    text = text.replace("@", " ").replace(".", " ").strip()
    tokens = text.split()
    if not tokens:
        return ""
    return " & ".join(f"{token}:*" for token in tokens)
