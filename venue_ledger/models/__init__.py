from venue_ledger.models.venue import Venue
from venue_ledger.models.booking import Booking
from venue_ledger.models.purchase_order import PurchaseOrder
from venue_ledger.models.transaction import Transaction
from venue_ledger.models.po_sequence import PONumberSequence

__all__ = ["Venue", "Booking", "PurchaseOrder", "Transaction", "PONumberSequence"]
