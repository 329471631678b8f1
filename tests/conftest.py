from decimal import Decimal

import pytest
from structlog.testing import capture_logs

from models import Account, Operation, Transaction
from repositories import History, Ledger
from services import TransactionService


@pytest.fixture(autouse=True)
def logs():
    """Capture structlog events instead of printing them."""
    with capture_logs() as captured:
        yield captured


@pytest.fixture
def history():
    return History()


@pytest.fixture
def ledger():
    return Ledger()


@pytest.fixture
def service(history, ledger):
    return TransactionService(history, ledger)


@pytest.fixture
def funded_ledger(ledger):
    """Ledger holding client 1 with 150 available."""
    ledger.add(Account(client=1, available=Decimal("150"), total=Decimal("150")))
    return ledger


def make_tx(op, client=1, tx=1, amount=None):
    return Transaction(
        op=Operation(op),
        client=client,
        tx=tx,
        amount=None if amount is None else Decimal(str(amount)),
    )


def balances(account):
    return (account.available, account.held, account.total, account.locked)


@pytest.fixture
def write_csv(tmp_path):
    def _write(content, name="transactions.csv"):
        path = tmp_path / name
        path.write_text(content)
        return str(path)
    return _write
