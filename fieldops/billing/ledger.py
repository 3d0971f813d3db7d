"""
Organization wallet ledger.

The single place where a wallet balance is changed. Every successful
mutation appends a ``WalletTransaction`` with the signed amount and the
resulting balance, so the ledger can always be replayed to the balance.

Debits are conditional updates (``UPDATE ... WHERE balance >= amount``), so a
debit for more than the balance never moves money, even under concurrent
callers and even when the database cannot run transactions.

Usage:
    result = debit(org.id, Decimal("5490.00"), TransactionSource.SUBSCRIPTION)
    if not result.ok:
        # show a top-up prompt with result.available

    # Charge and persist the subscription together
    def _charge():
        debit(...)
        subscription.save()

    run_in_transaction(_charge)

Transactions vs. best-effort writes:
    ``supports_transactions()`` is resolved once per process (settings
    override ``BILLING_ATOMIC_WRITES`` first, then the database backend's
    feature flags). When unsupported, ``run_in_transaction`` uses
    ``run_best_effort`` and logs a warning: each write still lands, but a
    crash between the debit and the subscription update can leave them out
    of step.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import TypeVar

from django.conf import settings
from django.db import DEFAULT_DB_ALIAS
from django.db import NotSupportedError
from django.db import connections
from django.db import transaction
from django.db.models import F
from django.db.models import Sum
from django.utils import timezone

from fieldops.billing.constants import DEFAULT_CURRENCY
from fieldops.billing.constants import ZERO
from fieldops.billing.constants import TransactionKind
from fieldops.billing.constants import TransactionSource
from fieldops.billing.exceptions import TransactionUnsupportedError
from fieldops.billing.models import Wallet
from fieldops.billing.models import WalletTransaction
from fieldops.billing.periods import to_money

logger = logging.getLogger(__name__)

T = TypeVar("T")

_transaction_support: dict[str, bool] = {}


@dataclass(frozen=True)
class DebitResult:
    """Outcome of a debit attempt. ``available`` is set when ``ok`` is False."""

    ok: bool
    wallet: Wallet
    available: Decimal | None = None


# =============================================================================
# Transaction capability
# =============================================================================


def supports_transactions(using: str = DEFAULT_DB_ALIAS) -> bool:
    """
    Whether billing writes can be wrapped in a database transaction.

    Resolved once per database alias and cached. ``BILLING_ATOMIC_WRITES``
    (True/False) overrides detection; None means ask the backend.
    """
    if using not in _transaction_support:
        override = getattr(settings, "BILLING_ATOMIC_WRITES", None)
        if override is None:
            supported = bool(connections[using].features.supports_transactions)
        else:
            supported = bool(override)
        _transaction_support[using] = supported
        if not supported:
            logger.warning(
                "Database %s does not support transactions; billing writes "
                "will run in best-effort mode.",
                using,
            )
    return _transaction_support[using]


def reset_capabilities() -> None:
    """Forget the cached capability answer (tests, settings changes)."""
    _transaction_support.clear()


def run_transactional(fn: Callable[[], T], *, using: str = DEFAULT_DB_ALIAS) -> T:
    """
    Run ``fn`` inside ``transaction.atomic``.

    Nested ledger calls made by ``fn`` join the same atomic block, so a
    failure anywhere rolls back every write. A backend that refuses to
    open the block raises ``TransactionUnsupportedError``.
    """
    entered = False
    try:
        with transaction.atomic(using=using):
            entered = True
            return fn()
    except NotSupportedError as exc:
        if entered:
            raise
        raise TransactionUnsupportedError(str(exc)) from exc


def run_best_effort(fn: Callable[[], T]) -> T:
    """Run ``fn`` with sequential, individually committed writes."""
    logger.warning(
        "Running billing operation %s without a transaction.",
        getattr(fn, "__name__", repr(fn)),
    )
    return fn()


def run_in_transaction(fn: Callable[[], T], *, using: str = DEFAULT_DB_ALIAS) -> T:
    """
    Run ``fn`` atomically when the database allows it, best-effort otherwise.

    Any error other than ``TransactionUnsupportedError`` propagates unchanged.
    """
    if not supports_transactions(using):
        return run_best_effort(fn)
    try:
        return run_transactional(fn, using=using)
    except TransactionUnsupportedError:
        logger.warning(
            "Database %s rejected a transaction; falling back to best-effort "
            "billing writes.",
            using,
            exc_info=True,
        )
        _transaction_support[using] = False
        return run_best_effort(fn)


def for_update(queryset):
    """Lock rows when inside an atomic block; plain read otherwise."""
    if transaction.get_connection(queryset.db).in_atomic_block:
        return queryset.select_for_update()
    return queryset


# =============================================================================
# Wallet primitives
# =============================================================================


def _positive_amount(amount) -> Decimal:
    normalized = to_money(amount)
    if normalized <= 0:
        msg = f"Amount must be positive, got {amount!r}."
        raise ValueError(msg)
    return normalized


def ensure_wallet(org_id) -> Wallet:
    """
    Return the org's wallet, creating an empty one on first use.

    Safe to call concurrently: the unique constraint on ``org`` makes the
    losing creator re-read the winner's row.
    """
    wallet, created = Wallet.objects.get_or_create(
        org_id=org_id,
        defaults={
            "balance": ZERO,
            "currency": getattr(settings, "BILLING_CURRENCY", DEFAULT_CURRENCY),
        },
    )
    if created:
        logger.info("Created wallet for org_id=%s", org_id)
    return wallet


def get_balance(org_id) -> Decimal:
    """Read the current balance without creating a wallet."""
    balance = (
        Wallet.objects.filter(org_id=org_id)
        .values_list("balance", flat=True)
        .first()
    )
    return balance if balance is not None else ZERO


def _append_entry(
    wallet: Wallet,
    *,
    amount: Decimal,
    kind: str,
    source: str,
    meta: dict | None,
) -> WalletTransaction:
    return WalletTransaction.objects.create(
        org_id=wallet.org_id,
        wallet=wallet,
        amount=amount,
        kind=kind,
        source=source,
        balance_after=wallet.balance,
        meta=meta or {},
    )


def debit(
    org_id,
    amount,
    source: str = TransactionSource.SUBSCRIPTION,
    meta: dict | None = None,
) -> DebitResult:
    """
    Decrease the balance by ``amount`` if and only if it covers it.

    Returns ``DebitResult(ok=False, available=...)`` without touching the
    wallet or the ledger when funds are insufficient.
    """
    amount = _positive_amount(amount)
    wallet = ensure_wallet(org_id)

    updated = Wallet.objects.filter(pk=wallet.pk, balance__gte=amount).update(
        balance=F("balance") - amount,
        modified=timezone.now(),
    )
    wallet.refresh_from_db(fields=["balance", "modified"])
    if not updated:
        logger.info(
            "Debit declined for org_id=%s: required=%s available=%s source=%s",
            org_id,
            amount,
            wallet.balance,
            source,
        )
        return DebitResult(ok=False, wallet=wallet, available=wallet.balance)

    _append_entry(
        wallet,
        amount=-amount,
        kind=TransactionKind.DEBIT,
        source=source,
        meta=meta,
    )
    logger.info(
        "Debited %s from org_id=%s (source=%s), balance=%s",
        amount,
        org_id,
        source,
        wallet.balance,
    )
    return DebitResult(ok=True, wallet=wallet)


def credit(
    org_id,
    amount,
    source: str = TransactionSource.MANUAL,
    meta: dict | None = None,
) -> Wallet:
    """Increase the balance by ``amount`` and record it."""
    amount = _positive_amount(amount)
    wallet = ensure_wallet(org_id)

    Wallet.objects.filter(pk=wallet.pk).update(
        balance=F("balance") + amount,
        modified=timezone.now(),
    )
    wallet.refresh_from_db(fields=["balance", "modified"])
    _append_entry(
        wallet,
        amount=amount,
        kind=TransactionKind.CREDIT,
        source=source,
        meta=meta,
    )
    logger.info(
        "Credited %s to org_id=%s (source=%s), balance=%s",
        amount,
        org_id,
        source,
        wallet.balance,
    )
    return wallet


def adjust_balance(
    org_id,
    *,
    balance=None,
    delta=None,
    actor: str | None = None,
) -> Wallet:
    """
    Administrative correction: set an absolute balance or apply a delta.

    Exactly one of ``balance`` and ``delta`` must be given. The balance may
    end up negative. A ``manual`` ledger entry is written whenever the
    balance actually moves.
    """
    if (balance is None) == (delta is None):
        msg = "Provide exactly one of balance or delta."
        raise ValueError(msg)

    def _adjust() -> Wallet:
        wallet = ensure_wallet(org_id)
        wallet = for_update(Wallet.objects.filter(pk=wallet.pk)).get()
        change = (
            to_money(balance) - wallet.balance if balance is not None else to_money(delta)
        )
        if change == 0:
            return wallet

        Wallet.objects.filter(pk=wallet.pk).update(
            balance=F("balance") + change,
            modified=timezone.now(),
        )
        wallet.refresh_from_db(fields=["balance", "modified"])
        _append_entry(
            wallet,
            amount=change,
            kind=TransactionKind.CREDIT if change > 0 else TransactionKind.DEBIT,
            source=TransactionSource.MANUAL,
            meta={"updated_by_email": actor} if actor else {},
        )
        logger.info(
            "Manual wallet adjustment for org_id=%s by %s: %s, balance=%s",
            org_id,
            actor or "system",
            change,
            wallet.balance,
        )
        return wallet

    return run_in_transaction(_adjust)


def list_transactions(org_id, limit: int = 30) -> list[WalletTransaction]:
    """Newest-first page of the org's ledger."""
    return list(
        WalletTransaction.objects.filter(org_id=org_id).order_by("-id")[:limit],
    )


def replay_balance(org_id) -> Decimal:
    """Sum of every ledger delta for the org; equals the wallet balance."""
    total = WalletTransaction.objects.filter(org_id=org_id).aggregate(
        total=Sum("amount"),
    )["total"]
    return total if total is not None else ZERO
