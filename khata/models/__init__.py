# khata/models/__init__.py
from .entity import Entity, EntityKind, UserEntity
from .ledger_entry import EntryKind, LedgerEntry, LineItem
from .product import Product
