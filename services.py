from enum import Enum
from typing import Iterable, Optional
import structlog

from exceptions import LockedAccount, TransactionError, TransactionNotFound
from models import (
    Account,
    HistoryRecord,
    Operation,
    ProcessingSummary,
    Reversal,
    Transaction,
    ZERO,
)
from repositories import AccountRepository, HistoryRepository

logger = structlog.get_logger()


class State(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    UPDATING = "updating"
    LOGGING = "logging"
    DONE = "done"


class Task:
    """Applies one transaction to the ledger.

    The machine runs ``IDLE -> {FETCHING | UPDATING} -> LOGGING -> DONE``.
    Each step either returns the next state or raises a ``TransactionError``;
    a raised error leaves both the ledger and the history untouched. A task is
    single use and is discarded once it reaches ``DONE`` or fails.
    """

    def __init__(self, history: HistoryRepository, ledger: AccountRepository, transaction: Transaction):
        self.history = history
        self.ledger = ledger
        self.transaction = transaction
        self.reversal: Optional[Reversal] = None
        self.state = State.IDLE
        self._steps = {
            State.IDLE: self._classify,
            State.FETCHING: self._fetch,
            State.UPDATING: self._update,
            State.LOGGING: self._log,
        }

    def run(self) -> HistoryRecord:
        while self.state != State.DONE:
            self.next_state()
        return self.history.get(self.transaction.client, self.transaction.tx)

    def next_state(self) -> State:
        if self.state == State.DONE:
            return self.state
        self.state = self._steps[self.state]()
        return self.state

    def _classify(self) -> State:
        if self.transaction.op.is_dispute_family:
            return State.FETCHING
        return State.UPDATING

    def _fetch(self) -> State:
        record = self.history.get(self.transaction.client, self.transaction.tx)
        if record is None:
            raise TransactionNotFound(client=self.transaction.client, tx=self.transaction.tx)

        if record.op == Operation.deposit:
            self.reversal = Reversal.from_signed(-(record.amount or ZERO))
        elif record.op == Operation.withdrawal:
            self.reversal = Reversal.from_signed(record.amount)
        else:
            # Already disputed: reuse what the dispute applied.
            self.reversal = record.reversal or Reversal.from_signed(record.amount)
        return State.UPDATING

    def _update(self) -> State:
        client = self.transaction.client
        account = self.ledger.get(client)
        created = account is None
        if created:
            # Unknown clients get a fresh account that joins the ledger only once
            # the operation succeeds, so a rejected first withdrawal leaves no trace.
            account = Account(client=client)

        if account.locked:
            raise LockedAccount(client=client, tx=self.transaction.tx)

        try:
            self._dispatch(account)
        except TransactionError as error:
            error.client, error.tx = client, self.transaction.tx
            raise

        if created:
            self.ledger.add(account)
        return State.LOGGING

    def _dispatch(self, account: Account) -> None:
        op = self.transaction.op
        if op == Operation.deposit:
            account.deposit(self.transaction.amount)
        elif op == Operation.withdrawal:
            account.withdraw(self.transaction.amount)
        elif op == Operation.dispute:
            account.dispute(self.reversal)
        elif op == Operation.resolve:
            account.resolve(self.reversal)
        elif op == Operation.chargeback:
            account.chargeback(self.reversal)

    def _log(self) -> State:
        record = HistoryRecord.from_transaction(self.transaction, self.reversal)
        self.history.insert(record, client=self.transaction.client, tx=self.transaction.tx)
        return State.DONE


class TransactionService:
    """Feeds transactions through ``Task`` one at a time.

    Rejections are logged and counted; they never stop the stream.
    """

    def __init__(self, history: HistoryRepository, ledger: AccountRepository):
        self.history = history
        self.ledger = ledger
        self.summary = ProcessingSummary()

    def apply(self, transaction: Transaction) -> bool:
        try:
            Task(self.history, self.ledger, transaction).run()
        except TransactionError as e:
            self.summary.failed += 1
            logger.warning(
                "Transaction rejected",
                error=str(e),
                error_code=e.error_code,
                client=transaction.client,
                tx=transaction.tx,
                type=transaction.op.value,
            )
            return False

        self.summary.applied += 1
        logger.debug(
            "Transaction applied",
            client=transaction.client,
            tx=transaction.tx,
            type=transaction.op.value,
        )
        return True

    def apply_all(self, transactions: Iterable[Transaction]) -> ProcessingSummary:
        for transaction in transactions:
            self.apply(transaction)
        return self.get_summary()

    def record_rejected(self) -> None:
        self.summary.rejected_records += 1

    def get_summary(self) -> ProcessingSummary:
        self.summary.accounts_count = len(self.ledger.accounts())
        return self.summary


# Factory function for dependency injection
def get_transaction_service(
    history: HistoryRepository,
    ledger: AccountRepository
) -> TransactionService:
    return TransactionService(history, ledger)
