"""Status rules for invoices and projects.

Invoice statuses are mostly set by the operator. The write path only applies
three automatic rules: Draft is sticky, proforma invoices that have collected
enough money move to ``Awaiting Final Payment``, and a Paid invoice has its
paid figure topped up to the total. Overdue is never stored; it is derived
whenever an invoice is displayed.

Project statuses follow a forward-only ratchet driven by ``amount_received``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from . import log
from .constants import (
    PROFORMA_FINAL_PAYMENT_THRESHOLD,
    InvoiceStatus,
    InvoiceType,
    ProjectStatus,
)
from .data_manager import InvoiceRow
from .money import invoice_balance


@dataclass(frozen=True)
class StatusDecision:
    """Status to persist together with the normalized paid figure."""

    status: InvoiceStatus
    paid: Decimal


def derive_invoice_status(invoice: InvoiceRow, computed_total: Decimal, computed_paid: Decimal) -> StatusDecision:
    """Apply the write-time status rules in priority order.

    1. Draft is never changed automatically.
    2. A proforma that is Sent or Partially Paid and has collected at least
       75 % (but not all) of its total becomes Awaiting Final Payment.
    3. A Paid invoice reports ``paid == total`` when it was short. The caller
       must reflect the clamp on the stored payments.
    4. Any other status is kept as given.

    Args:
        invoice (InvoiceRow): Invoice carrying the caller's status and type.
        computed_total (Decimal): Result of :func:`money.invoice_total`.
        computed_paid (Decimal): Result of :func:`money.total_paid`.

    Returns:
        StatusDecision: Status to persist and the paid figure it implies.
    """

    status = invoice.status
    if status == InvoiceStatus.DRAFT:
        return StatusDecision(status=status, paid=computed_paid)

    if (
        invoice.invoice_type == InvoiceType.PROFORMA
        and status in (InvoiceStatus.SENT, InvoiceStatus.PARTIALLY_PAID)
        and computed_paid >= PROFORMA_FINAL_PAYMENT_THRESHOLD * computed_total
        and computed_paid < computed_total
    ):
        log.debug("Proforma '%s' reached the final payment threshold", invoice.invoice_number)
        return StatusDecision(status=InvoiceStatus.AWAITING_FINAL_PAYMENT, paid=computed_paid)

    if status == InvoiceStatus.PAID and computed_paid < computed_total:
        return StatusDecision(status=status, paid=computed_total)

    return StatusDecision(status=status, paid=computed_paid)


def status_after_payment(status: InvoiceStatus, total: Decimal, paid: Decimal) -> InvoiceStatus:
    """Advance an invoice status after a payment has been appended.

    Only forward moves happen: a settled invoice becomes Paid, and a Sent or
    legacy Overdue invoice with a partial payment becomes Partially Paid.
    Draft invoices are left alone.
    """

    if status == InvoiceStatus.DRAFT:
        return status
    if paid >= total:
        return InvoiceStatus.PAID
    if paid > 0 and status in (InvoiceStatus.SENT, InvoiceStatus.OVERDUE):
        return InvoiceStatus.PARTIALLY_PAID
    return status


def normalize_incoming_status(status: InvoiceStatus) -> InvoiceStatus:
    """Map statuses that must not be persisted onto their stored equivalent."""

    if status == InvoiceStatus.OVERDUE:
        log.info("Overdue is derived from the due date; storing the invoice as Sent")
        return InvoiceStatus.SENT
    return status


def is_overdue(invoice: InvoiceRow, today: date) -> bool:
    """Return ``True`` when an unsettled, issued invoice is past its due date."""

    if invoice.due_date is None:
        return False
    if invoice.status in (InvoiceStatus.DRAFT, InvoiceStatus.PAID):
        return False
    return invoice.due_date < today and invoice_balance(invoice) > 0


def display_status(invoice: InvoiceRow, today: Optional[date] = None) -> InvoiceStatus:
    """Status shown to users, with Overdue derived from the due date."""

    if today is not None and is_overdue(invoice, today):
        return InvoiceStatus.OVERDUE
    if invoice.status == InvoiceStatus.OVERDUE:
        return InvoiceStatus.SENT
    return invoice.status


def advance_project_status(status: ProjectStatus, amount_received: Decimal, total_budget: Decimal) -> ProjectStatus:
    """Move a project forward once money arrives; never backward.

    Planned becomes In Progress as soon as anything is received, and In
    Progress becomes Completed once the budget is covered. Both steps can
    happen in one call. On Hold and Completed are never touched.
    """

    if status == ProjectStatus.PLANNED and amount_received > 0:
        status = ProjectStatus.IN_PROGRESS
    if status == ProjectStatus.IN_PROGRESS and total_budget > 0 and amount_received >= total_budget:
        status = ProjectStatus.COMPLETED
    return status
