from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from loguru import logger

from core.context import RequestContext
from core.exceptions import (
    IdempotencyConflictError,
    InvalidStateTransitionError,
    ReferralNotFoundError,
    ValidationError,
)
from core.storage import InMemoryStorage
from ledger.models import CurrencyType, EntryType, NewLedgerEntry
from ledger.service import LedgerService
from rules.models import ProgramType, RewardRule
from rules.resolver import RewardRuleResolver

from .models import (
    IssueRewardRequest,
    IssueResult,
    Job,
    PayoutPreference,
    Referral,
    ReferralAdminView,
    ReferralStatus,
    StatusChange,
    SubmitReferralRequest,
    can_transition,
)
from .profiles import ProfileService


class ReferralService:
    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        ledger: Optional[LedgerService] = None,
        resolver: Optional[RewardRuleResolver] = None,
        profiles: Optional[ProfileService] = None,
        default_denial_reason: str = "Denied",
    ):
        self.storage = storage or InMemoryStorage()
        self.ledger = ledger or LedgerService(self.storage)
        self.resolver = resolver or RewardRuleResolver(self.storage)
        self.profiles = profiles or ProfileService(self.storage)
        self.default_denial_reason = default_denial_reason

    def submit(self, ctx: RequestContext, request: SubmitReferralRequest) -> Referral:
        contact = {
            field: (value.strip() or None) if isinstance(value, str) else value
            for field, value in request.model_dump().items()
        }
        if not any(contact[f] for f in ("referred_name", "referred_phone", "referred_email")):
            raise ValidationError("A referral needs at least a name, phone number or email")

        profile = self.profiles.ensure_profile(ctx.user_id)
        now = datetime.now(timezone.utc)
        referral_data = {
            "id": uuid4(),
            "referrer_user_id": ctx.user_id,
            "program_type": profile.account_type,
            **contact,
            "status": ReferralStatus.SUBMITTED,
            "denied_reason": None,
            "created_at": now,
            "updated_at": now,
        }
        self.storage.insert("referrals", referral_data)
        logger.bind(
            referral_id=str(referral_data["id"]),
            user_id=str(ctx.user_id),
            program_type=profile.account_type.value,
        ).info("Referral submitted")
        return Referral(**referral_data)

    def get_referral(self, referral_id: UUID) -> Referral:
        row = self.storage.get("referrals", referral_id)
        if not row:
            raise ReferralNotFoundError(f"Referral {referral_id} not found")
        return Referral(**row)

    def get_for_caller(self, ctx: RequestContext, referral_id: UUID) -> Referral:
        referral = self.get_referral(referral_id)
        ctx.require_self_or_admin(referral.referrer_user_id)
        return referral

    def list_for_user(self, ctx: RequestContext) -> list[Referral]:
        rows = self.storage.select(
            "referrals", where={"referrer_user_id": ctx.user_id}, order_by="created_at", descending=True,
        )
        return [Referral(**row) for row in rows]

    def list_admin_view(self, ctx: RequestContext, limit: int = 50, offset: int = 0) -> list[ReferralAdminView]:
        ctx.require_admin()
        names = self.profiles.display_names()
        rows = self.storage.select(
            "referrals", order_by="created_at", descending=True, limit=limit, offset=offset,
        )
        return [
            ReferralAdminView(**row, referrer_display=names.get(row["referrer_user_id"], str(row["referrer_user_id"])))
            for row in rows
        ]

    def list_jobs(self, ctx: RequestContext, referral_id: UUID) -> list[Job]:
        self.get_for_caller(ctx, referral_id)
        rows = self.storage.select("jobs", where={"referral_id": referral_id}, order_by="completed_date")
        return [Job(**row) for row in rows]

    def status_history(self, ctx: RequestContext, referral_id: UUID) -> list[StatusChange]:
        self.get_for_caller(ctx, referral_id)
        rows = self.storage.select("status_history", where={"referral_id": referral_id}, order_by="created_at")
        return [StatusChange(**row) for row in rows]

    def set_status(
        self,
        ctx: RequestContext,
        referral_id: UUID,
        new_status: ReferralStatus,
        override: bool = False,
        reason: Optional[str] = None,
    ) -> Referral:
        ctx.require_admin()
        with self.storage.transaction():
            referral = self.get_referral(referral_id)
            extra = {}
            if new_status == ReferralStatus.DENIED:
                extra["denied_reason"] = self._denial_reason(reason)
            row = self._transition(ctx, referral, new_status, override=override, reason=reason, extra=extra)
        return Referral(**row)

    def deny(self, ctx: RequestContext, referral_id: UUID, reason: Optional[str] = None) -> Referral:
        return self.set_status(ctx, referral_id, ReferralStatus.DENIED, reason=reason)

    def complete_and_issue(
        self,
        ctx: RequestContext,
        referral_id: UUID,
        request: IssueRewardRequest,
        idempotency_key: Optional[str] = None,
    ) -> IssueResult:
        ctx.require_admin()
        if idempotency_key:
            existing = self._check_idempotency(idempotency_key, referral_id, request)
            if existing:
                return existing

        referral = self.get_referral(referral_id)
        self._ensure_transition(referral, ReferralStatus.COMPLETED_WORK)
        # A missing rule stops here, before anything is written.
        rule = self.resolver.resolve(referral.program_type, request.job_type)

        with self.storage.transaction():
            if idempotency_key:
                existing = self._check_idempotency(idempotency_key, referral_id, request)
                if existing:
                    return existing
            referral = self.get_referral(referral_id)
            now = datetime.now(timezone.utc)
            job_data = {
                "id": uuid4(),
                "referral_id": referral.id,
                "job_type": request.job_type,
                "invoice_number": request.invoice_number.strip(),
                "invoice_total": request.invoice_total,
                "completed_date": now,
            }
            self.storage.insert("jobs", job_data)
            completed = Referral(**self._transition(ctx, referral, ReferralStatus.COMPLETED_WORK))

            entry = self.ledger.append(
                self._reward_entry(completed, job_data, rule),
                idempotency_key=f"{idempotency_key}:ledger" if idempotency_key else None,
            )
            eligible = Referral(**self._transition(ctx, completed, ReferralStatus.ELIGIBLE))
            if idempotency_key:
                self.storage.put("idempotency_index", f"issue:{idempotency_key}", {
                    "referral_id": referral.id,
                    "job_id": job_data["id"],
                    "entry_id": entry.id,
                    "rule_id": rule.id,
                    "job_type": job_data["job_type"],
                    "invoice_number": job_data["invoice_number"],
                    "invoice_total": job_data["invoice_total"],
                })

        logger.bind(
            referral_id=str(referral_id),
            job_id=str(job_data["id"]),
            entry_id=str(entry.id),
            currency=entry.currency_type.value,
            amount=str(entry.amount),
        ).info("Reward issued for completed referral")
        return IssueResult(
            referral=eligible,
            job=Job(**job_data),
            ledger_entry=entry,
            rule=rule,
            message=self._issue_message(entry.currency_type, entry.amount),
        )

    def _reward_entry(self, referral: Referral, job: dict, rule: RewardRule) -> NewLedgerEntry:
        job_type = job["job_type"].value
        invoice = job["invoice_number"]
        if referral.program_type == ProgramType.PARTNER:
            return NewLedgerEntry(
                user_id=referral.referrer_user_id,
                referral_id=referral.id,
                job_id=job["id"],
                entry_type=EntryType.EARNED,
                currency_type=CurrencyType.POINTS,
                amount=rule.amount,
                memo=f"Earned {rule.amount} points for {job_type} referral (Invoice {invoice})",
            )

        profile_row = self.storage.get("profiles", referral.referrer_user_id) or {}
        preference = PayoutPreference(profile_row.get("payout_preference") or PayoutPreference.CASH)
        credit = preference == PayoutPreference.CREDIT
        return NewLedgerEntry(
            user_id=referral.referrer_user_id,
            referral_id=referral.id,
            job_id=job["id"],
            entry_type=EntryType.EARNED_CREDIT if credit else EntryType.EARNED_CASH,
            currency_type=CurrencyType.USD_CREDIT if credit else CurrencyType.USD_CASH,
            amount=rule.amount,
            memo=f"Earned {preference.value} reward for {job_type} referral (Invoice {invoice})",
        )

    @staticmethod
    def _issue_message(currency_type: CurrencyType, amount) -> str:
        if currency_type == CurrencyType.POINTS:
            return f"Issued {amount} points."
        kind = "credit" if currency_type == CurrencyType.USD_CREDIT else "cash"
        return f"Issued ${amount:.2f} as {kind}."

    def _transition(
        self,
        ctx: RequestContext,
        referral: Referral,
        target: ReferralStatus,
        override: bool = False,
        reason: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> dict:
        if override:
            if referral.status == target:
                raise InvalidStateTransitionError(f"Referral is already {target.value}")
        else:
            self._ensure_transition(referral, target)

        now = datetime.now(timezone.utc)
        changes = {"status": target, "updated_at": now, **(extra or {})}
        if referral.status == ReferralStatus.DENIED and target != ReferralStatus.DENIED:
            changes["denied_reason"] = None
        row = self.storage.update("referrals", referral.id, changes)
        self.storage.insert("status_history", {
            "id": uuid4(),
            "referral_id": referral.id,
            "from_status": referral.status,
            "to_status": target,
            "actor_user_id": ctx.user_id,
            "override": override,
            "reason": reason,
            "created_at": now,
        })

        log = logger.bind(
            referral_id=str(referral.id),
            from_status=referral.status.value,
            to_status=target.value,
            actor=str(ctx.user_id),
        )
        if override:
            log.warning("Admin override of referral status")
        else:
            log.info("Referral status changed")
        return row

    @staticmethod
    def _ensure_transition(referral: Referral, target: ReferralStatus) -> None:
        if not can_transition(referral.status, target):
            raise InvalidStateTransitionError(
                f"Cannot move referral from {referral.status.value} to {target.value}"
            )

    def _denial_reason(self, reason: Optional[str]) -> str:
        return (reason or "").strip() or self.default_denial_reason

    def _check_idempotency(
        self, idempotency_key: str, referral_id: UUID, request: IssueRewardRequest,
    ) -> Optional[IssueResult]:
        index = self.storage.get("idempotency_index", f"issue:{idempotency_key}")
        if not index:
            return None
        if index["referral_id"] != referral_id:
            raise IdempotencyConflictError(
                f"Idempotency key '{idempotency_key}' was already used for referral {index['referral_id']}"
            )
        if (index["job_type"], index["invoice_number"], index["invoice_total"]) != (
            request.job_type, request.invoice_number.strip(), request.invoice_total,
        ):
            raise IdempotencyConflictError(
                f"Idempotency key '{idempotency_key}' was already used with a different job or invoice"
            )
        entry = self.ledger.get_entry(index["entry_id"])
        return IssueResult(
            referral=self.get_referral(referral_id),
            job=Job(**self.storage.get("jobs", index["job_id"])),
            ledger_entry=entry,
            rule=self.resolver.get_rule(index["rule_id"]),
            message="Reward already issued (idempotent return)",
        )
