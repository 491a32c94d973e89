"""
Balance oracle: answers what a token account holds and for whom.

The engine only consumes the snapshot; where balances come from (a chain
RPC, an indexer, a test fixture) is the oracle's business.
"""

import logging
import threading
from typing import Dict, Optional, Protocol

from .keys import associated_token_address
from .models import TokenAccount

logger = logging.getLogger(__name__)


class BalanceOracle(Protocol):
    def get_token_account(self, address: str) -> Optional[TokenAccount]:
        ...


class InMemoryBalanceOracle:
    """Token accounts held in process memory"""

    def __init__(self):
        self._accounts: Dict[str, TokenAccount] = {}
        self._lock = threading.Lock()

    def open_account(self, owner: str, mint: str, amount: int = 0,
                     address: Optional[str] = None) -> TokenAccount:
        """Create (or overwrite) a token account; defaults to the associated address"""
        if amount < 0:
            raise ValueError("Token amount cannot be negative")
        account = TokenAccount(
            address=address or associated_token_address(owner, mint),
            owner=owner,
            mint=mint,
            amount=amount,
        )
        with self._lock:
            self._accounts[account.address] = account
        logger.debug(f"Opened token account {account.address[:16]}... "
                     f"for {owner} holding {amount} of {mint}")
        return account

    def set_balance(self, owner: str, mint: str, amount: int) -> TokenAccount:
        return self.open_account(owner, mint, amount)

    def get_token_account(self, address: str) -> Optional[TokenAccount]:
        with self._lock:
            account = self._accounts.get(address)
            if account is None:
                return None
            return TokenAccount(**account.to_dict())

    def balance_of(self, owner: str, mint: str) -> int:
        account = self.get_token_account(associated_token_address(owner, mint))
        return account.amount if account else 0
