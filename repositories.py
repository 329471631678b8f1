from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional, Tuple, Union

from models import Account, HistoryRecord, Transaction


class HistoryRepository(ABC):
    @abstractmethod
    def insert(
        self,
        entry: Union[Transaction, HistoryRecord],
        client: Optional[int] = None,
        tx: Optional[int] = None,
    ) -> Optional[HistoryRecord]:
        """Store the record for its key. Returns the record it replaced, if any."""
        pass

    @abstractmethod
    def get(self, client: int, tx: int) -> Optional[HistoryRecord]:
        """Get the most recently applied record for (client, tx)."""
        pass


class AccountRepository(ABC):
    @abstractmethod
    def get(self, client: int) -> Optional[Account]:
        """Get account. Returns None if account doesn't exist."""
        pass

    @abstractmethod
    def add(self, account: Account) -> None:
        """Store account under its client id."""
        pass

    @abstractmethod
    def accounts(self) -> List[Account]:
        """All accounts, in creation order."""
        pass


class History(HistoryRepository):
    def __init__(self):
        self.records: Dict[Tuple[int, int], HistoryRecord] = {}

    def insert(
        self,
        entry: Union[Transaction, HistoryRecord],
        client: Optional[int] = None,
        tx: Optional[int] = None,
    ) -> Optional[HistoryRecord]:
        if isinstance(entry, Transaction):
            client, tx = entry.client, entry.tx
            entry = HistoryRecord.from_transaction(entry)
        elif client is None or tx is None:
            raise ValueError("client and tx are required when inserting a HistoryRecord")
        previous = self.records.get((client, tx))
        self.records[(client, tx)] = entry
        return previous

    def get(self, client: int, tx: int) -> Optional[HistoryRecord]:
        return self.records.get((client, tx))

    def __contains__(self, key: Tuple[int, int]) -> bool:
        return key in self.records

    def __len__(self) -> int:
        return len(self.records)


class Ledger(AccountRepository):
    def __init__(self):
        self.clients: Dict[int, Account] = {}

    def get(self, client: int) -> Optional[Account]:
        return self.clients.get(client)

    def add(self, account: Account) -> None:
        self.clients[account.client] = account

    def accounts(self) -> List[Account]:
        return list(self.clients.values())

    def __contains__(self, client: int) -> bool:
        return client in self.clients

    def __iter__(self) -> Iterator[Account]:
        return iter(list(self.clients.values()))

    def __len__(self) -> int:
        return len(self.clients)
