# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Tenant predicate injection for hand-written SQL fragments.

Callers write a WHERE fragment once with the symbolic ``$SITEULID``
placeholder; the positional parameter number for the tenant id depends on
how many arguments the caller already bound, so it is filled in at call
time::

    where, args = append_site_ulid(site, "where p.status = $1 p.$SITEULID", "open")
    # "where p.status = $1  and p.site_ulid = $2", ["open", site]

The rewrite is plain substring replacement, not SQL parsing. It is only
safe for fragments written by the application, never for user input.
"""

import re
from typing import Any, Final

from beartype import beartype

from ..core.errors import MissingPlaceholderError

__all__: Final = [
    "SITE_ULID_COLUMN",
    "SITE_ULID_PLACEHOLDER",
    "append_site_ulid",
    "is_site_scoped",
    "site_filter",
]

SITE_ULID_PLACEHOLDER: Final = "$SITEULID"
SITE_ULID_COLUMN: Final = "site_ulid"


@beartype
def is_site_scoped(where: str, column: str = SITE_ULID_COLUMN) -> bool:
    """Check whether ``where`` already holds a finished tenant predicate.

    Both the bare form (`` site_ulid = $3``) and the table-qualified form
    (``p.site_ulid = $3``) count.
    """
    pattern = rf"(?:^|[\s.]){re.escape(column)} = \$\d+"
    return re.search(pattern, where) is not None


@beartype
def append_site_ulid(
    site_ulid: str,
    where: str,
    *args: Any,
    column: str = SITE_ULID_COLUMN,
    placeholder: str = SITE_ULID_PLACEHOLDER,
) -> tuple[str, list[Any]]:
    """Scope a WHERE fragment to one tenant.

    Args:
        site_ulid: Tenant identifier, bound as the last positional argument.
        where: SQL fragment containing the placeholder.
        *args: Arguments already bound by the fragment.
        column: Tenant column name.
        placeholder: Symbolic marker to replace.

    Returns:
        The rewritten fragment and the extended argument list. A fragment that
        is already scoped comes back unchanged with its arguments untouched.

    Raises:
        MissingPlaceholderError: The fragment has no placeholder and is not
            already scoped. Unscoped fragments are never silently patched.
    """
    if is_site_scoped(where, column):
        return where, list(args)
    if placeholder not in where:
        raise MissingPlaceholderError(where, placeholder)

    bound = [*args, site_ulid]
    position = len(bound)

    if "." + placeholder in where:
        # table-qualified: "p.$SITEULID" -> " and p.site_ulid = $N"
        head = where.split(placeholder, 1)[0]
        prefix = re.split(r"\s", head)[-1]
        return (
            where.replace(prefix + placeholder, f" and {prefix}{column} = ${position}"),
            bound,
        )

    return where.replace(placeholder, f" {column} = ${position}"), bound


@beartype
def site_filter(
    site_ulid: str,
    *args: Any,
    alias: str | None = None,
    column: str = SITE_ULID_COLUMN,
) -> tuple[str, list[Any]]:
    """Build a standalone tenant predicate for query builders.

    Returns ``("p.site_ulid = $N", [*args, site_ulid])`` so the predicate can
    be joined into a WHERE clause as a structured fragment instead of being
    patched into SQL text.
    """
    bound = [*args, site_ulid]
    qualifier = f"{alias}." if alias else ""
    return f"{qualifier}{column} = ${len(bound)}", bound
