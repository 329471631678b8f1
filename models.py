from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum
from typing import Optional, Union
from decimal import Decimal, ROUND_HALF_UP, localcontext

from exceptions import InsufficientFunds, UnspecifiedBehavior


ZERO = Decimal("0")
# Range of a 96-bit mantissa with at most 28 decimal places.
MAX_DIGITS = 28
MAX_AMOUNT = Decimal(2 ** 96 - 1)


class Operation(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    dispute = "dispute"
    resolve = "resolve"
    chargeback = "chargeback"

    @property
    def is_dispute_family(self) -> bool:
        return self in (Operation.dispute, Operation.resolve, Operation.chargeback)


class Origin(str, Enum):
    """Kind of the transaction a dispute was raised against."""
    deposit = "deposit"
    withdrawal = "withdrawal"


class Reversal(BaseModel):
    """Amount carried through dispute, resolve and chargeback.

    Tags the disputed magnitude with the kind of the original transaction.
    ``signed`` gives the equivalent signed value: negative for deposits,
    positive for withdrawals.
    """

    model_config = ConfigDict(frozen=True)

    origin: Origin = Field(..., description="Kind of the disputed transaction")
    amount: Decimal = Field(default=ZERO, description="Magnitude of the disputed transaction")

    @property
    def signed(self) -> Decimal:
        if self.origin == Origin.deposit:
            return -self.amount
        return self.amount

    @classmethod
    def from_signed(cls, value: Optional[Decimal]) -> "Reversal":
        value = ZERO if value is None else Decimal(value)
        if value < ZERO:
            return cls(origin=Origin.deposit, amount=-value)
        return cls(origin=Origin.withdrawal, amount=value)

    @classmethod
    def coerce(cls, value: Union["Reversal", Decimal, int, str, None]) -> "Reversal":
        if isinstance(value, Reversal):
            return value
        return cls.from_signed(None if value is None else Decimal(value))


class Transaction(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    op: Operation = Field(..., alias="type", description="Transaction kind")
    client: int = Field(..., ge=0, le=65535, description="Client identifier (u16)")
    tx: int = Field(..., ge=0, le=4294967295, description="Transaction identifier (u32)")
    amount: Optional[Decimal] = Field(default=None, description="Amount for deposits and withdrawals")

    @field_validator("op", mode="before")
    @classmethod
    def normalize_op(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def blank_amount_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v is None:
            return v
        if not v.is_finite():
            raise ValueError("Amount must be a finite decimal")
        _, digits, exponent = v.as_tuple()
        significant = "".join(map(str, digits)).rstrip("0")
        scale = -(exponent + len(digits) - len(significant))
        if len(significant) > MAX_DIGITS:
            raise ValueError(f"Amount must have at most {MAX_DIGITS} significant digits")
        if scale > MAX_DIGITS:
            raise ValueError(f"Amount must have at most {MAX_DIGITS} decimal places")
        if v.copy_abs() > MAX_AMOUNT:
            raise ValueError(f"Amount magnitude must not exceed {MAX_AMOUNT}")
        return v

    @property
    def key(self) -> tuple:
        return (self.client, self.tx)


class HistoryRecord(BaseModel):
    """Last applied operation for a (client, tx) key."""

    op: Operation
    amount: Optional[Decimal] = None
    reversal: Optional[Reversal] = None

    @classmethod
    def from_transaction(cls, transaction: Transaction, reversal: Optional[Reversal] = None) -> "HistoryRecord":
        if transaction.op.is_dispute_family:
            reversal = reversal or Reversal.from_signed(transaction.amount)
            return cls(op=transaction.op, reversal=reversal)
        return cls(op=transaction.op, amount=transaction.amount)

    @property
    def signed_amount(self) -> Optional[Decimal]:
        if self.reversal is not None:
            return self.reversal.signed
        return self.amount


class Account(BaseModel):
    client: int = Field(..., ge=0, le=65535)
    available: Decimal = ZERO
    held: Decimal = ZERO
    total: Decimal = ZERO
    locked: bool = False

    @property
    def balanced(self) -> bool:
        return self.total == self.available + self.held

    def deposit(self, amount: Optional[Decimal] = None) -> None:
        self.total += amount if amount is not None else ZERO
        self.available = self.total - self.held

    def withdraw(self, amount: Optional[Decimal] = None) -> None:
        if amount is None:
            return
        if amount > self.available:
            raise InsufficientFunds(client=self.client)
        if amount <= self.available:
            self.total -= amount
            self.available = self.total - self.held
            return
        raise UnspecifiedBehavior(client=self.client)

    def dispute(self, reversal) -> None:
        reversal = Reversal.coerce(reversal)
        if reversal.origin == Origin.deposit:
            self.held += reversal.amount
            self.available -= reversal.amount
        else:
            self.held += reversal.amount
            self.total += reversal.amount

    def resolve(self, reversal) -> None:
        reversal = Reversal.coerce(reversal)
        if reversal.origin == Origin.deposit:
            self.held -= reversal.amount
            self.available += reversal.amount
        else:
            self.held -= reversal.amount
            self.total -= reversal.amount

    def chargeback(self, reversal) -> None:
        reversal = Reversal.coerce(reversal)
        # Deposit chargebacks release the hold and leave the total untouched.
        if reversal.origin == Origin.deposit:
            self.held -= reversal.amount
            self.available += reversal.amount
        else:
            self.held -= reversal.amount
            self.total -= reversal.amount
        self.locked = True

    def report(self, precision: int = 4) -> "AccountReport":
        quantum = Decimal(1).scaleb(-precision)

        def render(value: Decimal) -> str:
            with localcontext() as ctx:
                ctx.prec = max(ctx.prec, value.adjusted() + precision + 2)
                return str(value.quantize(quantum, rounding=ROUND_HALF_UP))

        return AccountReport(
            client=self.client,
            available=render(self.available),
            held=render(self.held),
            total=render(self.total),
            locked=self.locked,
        )


class AccountReport(BaseModel):
    client: int = Field(..., description="Client identifier")
    available: str = Field(..., description="Available funds, fixed precision")
    held: str = Field(..., description="Held funds, fixed precision")
    total: str = Field(..., description="Total funds, fixed precision")
    locked: bool = Field(..., description="Whether a chargeback froze the account")

    def as_row(self) -> list:
        return [self.client, self.available, self.held, self.total, str(self.locked).lower()]


class ProcessingSummary(BaseModel):
    applied: int = Field(default=0, description="Transactions applied successfully")
    failed: int = Field(default=0, description="Transactions rejected by the engine")
    rejected_records: int = Field(default=0, description="Input records dropped at decode time")
    accounts_count: int = Field(default=0, description="Accounts in the ledger")
