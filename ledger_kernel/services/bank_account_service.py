"""
BankAccountService -- tenant bank accounts and their ledger link.

Responsibility:
    Registers bank accounts and links each one to the ledger whose entries
    are matched against its statement lines.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - account_number is unique per tenant.
    - The linked ledger belongs to the bank account's tenant.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.exceptions import (
    BankAccountNotFoundError,
    BankLedgerNotLinkedError,
    CrossTenantLedgerError,
    DuplicateAccountNumberError,
    LedgerNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.bank import BankAccount
from ledger_kernel.models.chart import Ledger
from ledger_kernel.services.base import BaseService

logger = get_logger("services.bank_account")


class BankAccountService(BaseService[BankAccount]):
    """Bank account registration."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def get_bank_account(self, bank_account_id: UUID) -> BankAccount:
        account = self.session.get(BankAccount, bank_account_id)
        if account is None:
            raise BankAccountNotFoundError(str(bank_account_id))
        return account

    def lock_bank_account(self, bank_account_id: UUID) -> BankAccount:
        """
        Load the account under ``SELECT ... FOR UPDATE``.

        Matching and reconciliation take this lock first so two matchers on
        the same account never claim the same statement line.
        """
        account = self.session.execute(
            select(BankAccount)
            .where(BankAccount.id == bank_account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if account is None:
            raise BankAccountNotFoundError(str(bank_account_id))
        return account

    def require_linked_ledger(self, account: BankAccount) -> UUID:
        if account.ledger_id is None:
            raise BankLedgerNotLinkedError(str(account.id))
        return account.ledger_id

    def create_bank_account(
        self,
        tenant_id: UUID,
        account_name: str,
        account_number: str,
        actor_id: UUID,
        bank_name: str | None = None,
        ledger_id: UUID | None = None,
    ) -> BankAccount:
        """
        Register a bank account, optionally linked to a ledger right away.

        Raises:
            DuplicateAccountNumberError: Number already used by the tenant.
            LedgerNotFoundError, CrossTenantLedgerError: Bad ledger link.
        """
        existing = self.session.execute(
            select(BankAccount).where(
                BankAccount.tenant_id == tenant_id,
                BankAccount.account_number == account_number,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateAccountNumberError(account_number)
        if ledger_id is not None:
            self._check_ledger(tenant_id, ledger_id)

        account = BankAccount(
            tenant_id=tenant_id,
            account_name=account_name,
            account_number=account_number,
            bank_name=bank_name,
            ledger_id=ledger_id,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "bank_account_created",
            extra={
                "tenant_id": str(tenant_id),
                "bank_account_id": str(account.id),
                "ledger_id": str(ledger_id) if ledger_id else None,
            },
        )
        return account

    def link_ledger(self, bank_account_id: UUID, ledger_id: UUID, actor_id: UUID) -> BankAccount:
        """Point the bank account at ``ledger_id``."""
        with LogContext.bind(bank_account_id=bank_account_id, actor_id=actor_id):
            account = self.get_bank_account(bank_account_id)
            self._check_ledger(account.tenant_id, ledger_id)
            previous = account.ledger_id
            account.ledger_id = ledger_id
            account.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "bank_ledger_linked",
                extra={
                    "ledger_id": str(ledger_id),
                    "previous_ledger_id": str(previous) if previous else None,
                },
            )
        return account

    def _check_ledger(self, tenant_id: UUID, ledger_id: UUID) -> Ledger:
        ledger = self.session.get(Ledger, ledger_id)
        if ledger is None:
            raise LedgerNotFoundError(str(ledger_id))
        if ledger.tenant_id != tenant_id:
            raise CrossTenantLedgerError(str(ledger_id), str(tenant_id))
        return ledger
