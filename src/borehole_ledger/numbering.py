"""Sequential, year-scoped invoice numbers such as ``INV-2024-007``."""

from __future__ import annotations

import re
from datetime import date
from typing import Iterable, Optional

from . import log
from .constants import DEFAULT_INVOICE_PREFIX

_SUFFIX = re.compile(r"[0-9]+")


def next_invoice_number(existing_numbers: Iterable[str], prefix: str = DEFAULT_INVOICE_PREFIX, *, year: Optional[int] = None) -> str:
    """Return the next free number for ``prefix`` in ``year``.

    Only numbers shaped ``<prefix>-<year>-<n>`` count. Suffixes that are not
    plain ASCII digits are skipped rather than rejected, so one malformed
    legacy number cannot block invoicing.

    Args:
        existing_numbers (Iterable[str]): Invoice numbers already issued.
        prefix (str): Number prefix, ``"INV"`` by default.
        year (int | None): Calendar year to number within. Defaults to the
            current year.

    Returns:
        str: ``<prefix>-<year>-<NNN>``, zero-padded to at least three digits.
    """

    year = year if year is not None else date.today().year
    scope = f"{prefix}-{year}-"
    highest = 0
    for number in existing_numbers:
        if not number or not number.startswith(scope):
            continue
        suffix = number[len(scope):]
        if not _SUFFIX.fullmatch(suffix):
            log.warning("Ignoring malformed invoice number '%s'", number)
            continue
        highest = max(highest, int(suffix))
    return f"{scope}{highest + 1:03d}"
