from .ledger import TransactionLedger, get_ledger
from .models import Base, Transaction

__all__ = ["Base", "Transaction", "TransactionLedger", "get_ledger"]
