from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional, Union
from uuid import UUID, uuid4

from loguru import logger

from core.exceptions import IdempotencyConflictError, InsufficientBalanceError, NotFoundError, ValidationError
from core.storage import InMemoryStorage

from .models import (
    BalanceSummary,
    CurrencyType,
    LedgerEntry,
    LedgerHistoryResponse,
    NewLedgerEntry,
    ReconciliationReport,
    UserBalance,
)

ZERO = Decimal("0")


def aggregate(entries: Iterable[Union[LedgerEntry, dict]], currency_type: CurrencyType) -> Decimal:
    """Fold signed amounts of the supplied entries in one currency."""
    total = ZERO
    for entry in entries:
        if isinstance(entry, dict):
            currency, amount = entry["currency_type"], entry["amount"]
        else:
            currency, amount = entry.currency_type, entry.amount
        if CurrencyType(currency) == currency_type:
            total += Decimal(amount)
    return total


class LedgerService:
    def __init__(self, storage: Optional[InMemoryStorage] = None):
        self.storage = storage or InMemoryStorage()

    def append(
        self,
        entry: NewLedgerEntry,
        idempotency_key: Optional[str] = None,
        require_sufficient: bool = False,
    ) -> LedgerEntry:
        with self.storage.transaction():
            if idempotency_key:
                existing = self._check_idempotency(idempotency_key)
                if existing:
                    if (existing.user_id, existing.currency_type, existing.amount) != (
                        entry.user_id, entry.currency_type, entry.amount,
                    ):
                        raise IdempotencyConflictError(
                            f"Idempotency key '{idempotency_key}' was already used for a different entry"
                        )
                    return existing

            balance_row = self._balance_row(entry.user_id, entry.currency_type)
            new_balance = balance_row["balance"] + entry.amount
            if require_sufficient and new_balance < ZERO:
                raise InsufficientBalanceError(
                    f"Debit of {-entry.amount} exceeds {entry.currency_type.value} balance {balance_row['balance']}"
                )

            now = datetime.now(timezone.utc)
            entry_data = {
                "id": uuid4(),
                "user_id": entry.user_id,
                "entry_type": entry.entry_type,
                "currency_type": entry.currency_type,
                "amount": entry.amount,
                "balance_after": new_balance,
                "memo": entry.memo,
                "referral_id": entry.referral_id,
                "job_id": entry.job_id,
                "redemption_request_id": entry.redemption_request_id,
                "idempotency_key": idempotency_key,
                "created_at": now,
            }
            self.storage.insert("ledger_entries", entry_data)

            balance_row.update(
                balance=new_balance,
                entry_count=balance_row["entry_count"] + 1,
                last_transaction_at=now,
            )
            self.storage.put("balances", (entry.user_id, entry.currency_type), balance_row)
            if idempotency_key:
                self.storage.put("idempotency_index", f"ledger:{idempotency_key}", {"entry_id": entry_data["id"]})

        logger.bind(
            entry_id=str(entry_data["id"]),
            user_id=str(entry.user_id),
            currency=entry.currency_type.value,
            amount=str(entry.amount),
        ).info("Ledger entry appended")
        return LedgerEntry(**entry_data)

    def hold(self, user_id: UUID, currency_type: CurrencyType, amount: Decimal) -> UserBalance:
        """Reserve part of the available balance; fails instead of going below zero."""
        if amount <= ZERO:
            raise ValidationError("Hold amount must be positive")
        with self.storage.transaction():
            balance_row = self._balance_row(user_id, currency_type)
            available = balance_row["balance"] - balance_row["held"]
            if available < amount:
                raise InsufficientBalanceError(
                    f"Insufficient {currency_type.value}: {available} available, {amount} required"
                )
            balance_row["held"] += amount
            self.storage.put("balances", (user_id, currency_type), balance_row)
        return self._to_balance(user_id, currency_type, balance_row)

    def release(self, user_id: UUID, currency_type: CurrencyType, amount: Decimal) -> UserBalance:
        with self.storage.transaction():
            balance_row = self._balance_row(user_id, currency_type)
            balance_row["held"] = max(balance_row["held"] - amount, ZERO)
            self.storage.put("balances", (user_id, currency_type), balance_row)
        return self._to_balance(user_id, currency_type, balance_row)

    def get_balance(self, user_id: UUID, currency_type: CurrencyType) -> UserBalance:
        return self._to_balance(user_id, currency_type, self._balance_row(user_id, currency_type))

    def get_balances(self, user_id: UUID) -> BalanceSummary:
        return BalanceSummary(
            user_id=user_id,
            balances=[self.get_balance(user_id, currency) for currency in CurrencyType],
        )

    def reconcile(self, user_id: UUID, currency_type: CurrencyType) -> ReconciliationReport:
        with self.storage.transaction():
            entries = self.storage.select(
                "ledger_entries",
                where={"user_id": user_id, "currency_type": currency_type},
            )
            running = self._balance_row(user_id, currency_type)["balance"]
        recomputed = aggregate(entries, currency_type)
        report = ReconciliationReport(
            user_id=user_id,
            currency_type=currency_type,
            running_balance=running,
            recomputed_balance=recomputed,
            entry_count=len(entries),
            in_sync=running == recomputed,
        )
        if not report.in_sync:
            logger.bind(user_id=str(user_id), currency=currency_type.value).error(
                "Running balance drifted from ledger history"
            )
        return report

    def list_entries(self, user_id: UUID, currency_type: Optional[CurrencyType] = None) -> list[LedgerEntry]:
        where = {"user_id": user_id}
        if currency_type:
            where["currency_type"] = currency_type
        rows = self.storage.select("ledger_entries", where=where, order_by="created_at")
        return [LedgerEntry(**row) for row in rows]

    def get_ledger_history(self, user_id: UUID, limit: int = 50, offset: int = 0) -> LedgerHistoryResponse:
        rows = self.storage.select(
            "ledger_entries",
            where={"user_id": user_id},
            order_by="created_at",
            descending=True,
            limit=limit,
            offset=offset,
        )
        return LedgerHistoryResponse(
            user_id=user_id,
            entries=[LedgerEntry(**row) for row in rows],
            total_count=self.storage.count("ledger_entries", where={"user_id": user_id}),
            balances=self.get_balances(user_id).balances,
        )

    def get_entry(self, entry_id: UUID) -> LedgerEntry:
        row = self.storage.get("ledger_entries", entry_id)
        if not row:
            raise NotFoundError(f"Ledger entry {entry_id} not found")
        return LedgerEntry(**row)

    def _check_idempotency(self, idempotency_key: str) -> Optional[LedgerEntry]:
        index = self.storage.get("idempotency_index", f"ledger:{idempotency_key}")
        if index:
            return self.get_entry(index["entry_id"])
        return None

    def _balance_row(self, user_id: UUID, currency_type: CurrencyType) -> dict:
        row = self.storage.get("balances", (user_id, currency_type))
        if row is None:
            row = {"balance": ZERO, "held": ZERO, "entry_count": 0, "last_transaction_at": None}
        return row

    @staticmethod
    def _to_balance(user_id: UUID, currency_type: CurrencyType, row: dict) -> UserBalance:
        return UserBalance(
            user_id=user_id,
            currency_type=currency_type,
            balance=row["balance"],
            held=row["held"],
            available=row["balance"] - row["held"],
            entry_count=row["entry_count"],
            last_transaction_at=row["last_transaction_at"],
        )
