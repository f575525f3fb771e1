from enum import Enum


class CreditContractState(Enum):
    PENDING_SIGNATURE = "PENDING_SIGNATURE"
    ACTIVE = "ACTIVE"
    PAID = "PAID"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (CreditContractState.PAID, CreditContractState.CANCELLED)


class SaleContractState(Enum):
    PENDING_SIGNATURE = "PENDING_SIGNATURE"
    SIGNED = "SIGNED"


class NoteState(Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


OPEN_NOTE_STATES = (NoteState.PENDING, NoteState.OVERDUE)
