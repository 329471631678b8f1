from typing import Optional


class TransactionError(Exception):
    """Base class for failures applying a single transaction.

    Every subclass is local to one transaction: the caller logs it and moves on
    to the next record.
    """

    error_code = "TRANSACTION_ERROR"
    message = "Transaction failed"

    def __init__(self, client: Optional[int] = None, tx: Optional[int] = None):
        self.client = client
        self.tx = tx
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.client is None and self.tx is None:
            return self.message
        return f"{self.message} (client={self.client}, tx={self.tx})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, TransactionError):
            return NotImplemented
        return type(self) is type(other) and (self.client, self.tx) == (other.client, other.tx)

    def __hash__(self) -> int:
        return hash((type(self), self.client, self.tx))


class InsufficientFunds(TransactionError):
    error_code = "INSUFFICIENT_FUNDS"
    message = "Insufficient funds in account"


class TransactionNotFound(TransactionError):
    error_code = "TRANSACTION_NOT_FOUND"
    message = "Cannot find transaction"


class LockedAccount(TransactionError):
    error_code = "LOCKED_ACCOUNT"
    message = "Account frozen"


class UnspecifiedBehavior(TransactionError):
    # Withdrawal comparison arm that total ordering makes unreachable.
    error_code = "UNSPECIFIED_BEHAVIOR"
    message = "Unexpected behavior"
