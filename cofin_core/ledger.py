"""
Operation Ledger

Records counter and field operations and derives their double-entry
journal postings from a fixed rule table. Every known operation type posts
exactly one debit leg and one credit leg of the same amount, so debits
equal credits across the whole journal. Balances are derived from the
journal, never stored.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Union
from enum import Enum
import logging
import secrets

from .storage import DocumentStoreInterface
from .audit import AuditLog, AuditAction
from .settings import SettingsStore
from .phone import normalize_phone
from .errors import MissingFieldError, UnknownOperationTypeError


logger = logging.getLogger(__name__)

OPERATION_ID_LENGTH = 10

Amount = Union[Decimal, int, float, str]


class OperationType(Enum):
    """Client-facing transaction kinds"""
    CASH_DEPOSIT = "Dépôt caisse"
    CASH_WITHDRAWAL = "Retrait caisse"
    CREDIT_COLLECTION = "Recouvrement crédit"
    TONTINE_CONTRIBUTION = "Contribution tontine"

    @classmethod
    def from_label(cls, label: str) -> Optional['OperationType']:
        """Return the type for a label, None if the label is unknown"""
        try:
            return cls(label)
        except ValueError:
            return None


class LedgerAccount(Enum):
    """Ledger accounts used by the posting rules"""
    CASH = "Caisse"
    SAVINGS = "Epargne"
    CREDIT = "Crédit"
    TONTINE = "Tontine"


@dataclass(frozen=True)
class PostingRule:
    """Debit one account, credit another, for the operation amount"""
    debit_account: LedgerAccount
    credit_account: LedgerAccount


POSTING_RULES: Dict[OperationType, PostingRule] = {
    OperationType.CASH_DEPOSIT: PostingRule(LedgerAccount.CASH, LedgerAccount.SAVINGS),
    OperationType.CASH_WITHDRAWAL: PostingRule(LedgerAccount.SAVINGS, LedgerAccount.CASH),
    OperationType.CREDIT_COLLECTION: PostingRule(LedgerAccount.CASH, LedgerAccount.CREDIT),
    OperationType.TONTINE_CONTRIBUTION: PostingRule(LedgerAccount.CASH, LedgerAccount.TONTINE),
}


def posting_rule_for(type_label: str) -> Optional[PostingRule]:
    """Posting rule for an operation type label, None when there is none"""
    operation_type = OperationType.from_label(type_label)
    if operation_type is None:
        return None
    return POSTING_RULES[operation_type]


@dataclass(frozen=True)
class Operation:
    """Recorded client operation (immutable)"""
    id: str
    agency_id: str
    date: date
    type: str
    product: str
    amount: Decimal
    actor_id: str
    client_phone: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "agence": self.agency_id,
            "date": self.date.isoformat(),
            "type": self.type,
            "produit": self.product,
            "montant": str(self.amount),
            "acteur": self.actor_id,
            "client": self.client_phone
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Operation':
        return cls(
            id=data["id"],
            agency_id=data["agence"],
            date=date.fromisoformat(data["date"]),
            type=data["type"],
            product=data["produit"],
            amount=Decimal(str(data["montant"])),
            actor_id=data["acteur"],
            client_phone=data["client"]
        )


@dataclass(frozen=True)
class JournalEntry:
    """One leg of a double-entry posting (immutable)"""
    date: date
    agency_id: str
    account: str
    debit: Decimal
    credit: Decimal
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "agence": self.agency_id,
            "compte": self.account,
            "debit": str(self.debit),
            "credit": str(self.credit),
            "libelle": self.label
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JournalEntry':
        return cls(
            date=date.fromisoformat(data["date"]),
            agency_id=data["agence"],
            account=data["compte"],
            debit=Decimal(str(data.get("debit") or 0)),
            credit=Decimal(str(data.get("credit") or 0)),
            label=data.get("libelle", "")
        )


@dataclass(frozen=True)
class TrialBalanceRow:
    """Aggregated debits and credits of one ledger account"""
    account: str
    debit: Decimal
    credit: Decimal

    @property
    def balance(self) -> Decimal:
        return self.debit - self.credit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "compte": self.account,
            "debit": str(self.debit),
            "credit": str(self.credit),
            "solde": str(self.balance)
        }


def _parse_amount(amount: Optional[Amount]) -> Decimal:
    if amount is None or amount == "" or isinstance(amount, bool):
        raise MissingFieldError("amount")
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise MissingFieldError("amount", f"Invalid amount: {amount!r}") from None
    if not value.is_finite() or value == 0:
        raise MissingFieldError("amount")
    if value < 0:
        raise MissingFieldError("amount", f"Amount must be positive: {amount!r}")
    return value


def build_entries(operation: Operation, rule: PostingRule) -> List[JournalEntry]:
    """Debit leg then credit leg for an operation"""
    zero = Decimal("0")
    return [
        JournalEntry(
            date=operation.date,
            agency_id=operation.agency_id,
            account=rule.debit_account.value,
            debit=operation.amount,
            credit=zero,
            label=operation.type
        ),
        JournalEntry(
            date=operation.date,
            agency_id=operation.agency_id,
            account=rule.credit_account.value,
            debit=zero,
            credit=operation.amount,
            label=operation.type
        )
    ]


class OperationLedger:
    """
    Records operations and keeps the journal that backs the trial balance
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        settings: SettingsStore,
        audit_log: AuditLog,
        strict_types: bool = False
    ):
        self.store = store
        self.settings = settings
        self.audit_log = audit_log
        self.strict_types = strict_types

    def record(
        self,
        agency_id: str,
        type: str,
        product: str,
        amount: Amount,
        actor_id: str,
        client_phone: str
    ) -> Operation:
        """
        Record an operation and post its journal entries.

        The operation, its entries and the audit entry are written in one
        document save. Types without a posting rule are stored with no
        entries unless the ledger runs in strict mode.

        Args:
            agency_id: Agency where the operation happened
            type: Operation type label, e.g. "Dépôt caisse"
            product: Product the operation applies to
            amount: Positive amount
            actor_id: Cashier or field agent
            client_phone: Client phone, normalized with the configured country code

        Returns:
            Recorded Operation

        Raises:
            MissingFieldError: If a field is empty or the amount is not positive
            UnknownOperationTypeError: In strict mode, for a type without a rule
        """
        for field_name, value in (
            ("agency_id", agency_id), ("type", type), ("product", product),
            ("actor_id", actor_id), ("client_phone", client_phone)
        ):
            if not value:
                raise MissingFieldError(field_name)
        value = _parse_amount(amount)

        rule = posting_rule_for(type)
        if rule is None:
            if self.strict_types:
                raise UnknownOperationTypeError(f"No posting rule for operation type: {type}")
            logger.warning("Operation type %r has no posting rule, no journal entries posted", type)

        with self.store.transaction() as document:
            otp_config = self.settings.otp_config_of(document)
            operation = Operation(
                id=secrets.token_urlsafe(OPERATION_ID_LENGTH)[:OPERATION_ID_LENGTH],
                agency_id=agency_id,
                date=datetime.now(timezone.utc).date(),
                type=type,
                product=product,
                amount=value,
                actor_id=actor_id,
                client_phone=normalize_phone(otp_config.country_calling_code, client_phone)
            )
            entries = build_entries(operation, rule) if rule else []

            document.setdefault("operations", []).append(operation.to_dict())
            document.setdefault("journal", []).extend(e.to_dict() for e in entries)
            self.audit_log.append(document, actor_id, AuditAction.OPERATION_RECORDED, {
                "op": operation.to_dict(),
                "entries": [e.to_dict() for e in entries]
            })

        logger.info("Operation %s recorded (%s, %s), %d journal entries",
                    operation.id, type, value, len(entries))
        return operation

    def operations(self) -> List[Operation]:
        """All operations in insertion order"""
        return [Operation.from_dict(d) for d in self.store.load().get("operations", [])]

    def journal(self) -> List[JournalEntry]:
        """All journal entries in insertion order"""
        return [JournalEntry.from_dict(d) for d in self.store.load().get("journal", [])]

    def trial_balance(self) -> Dict[str, TrialBalanceRow]:
        """
        Aggregate the journal per ledger account

        Returns:
            Dictionary of account name -> TrialBalanceRow, in order of first posting
        """
        totals: Dict[str, Dict[str, Decimal]] = {}
        for entry in self.journal():
            account_totals = totals.setdefault(
                entry.account, {"debit": Decimal("0"), "credit": Decimal("0")}
            )
            account_totals["debit"] += entry.debit
            account_totals["credit"] += entry.credit

        return {
            account: TrialBalanceRow(account=account, debit=t["debit"], credit=t["credit"])
            for account, t in totals.items()
        }

    def is_balanced(self) -> bool:
        """Check that balances over all accounts sum to zero"""
        return sum((row.balance for row in self.trial_balance().values()), Decimal("0")) == 0
