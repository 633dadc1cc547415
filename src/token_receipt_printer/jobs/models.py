"""
Print job model. Maps directly from an item of the receipt queue response.
No database, no ORM. Pure data class.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from token_receipt_printer.errors import ParseError
from token_receipt_printer.receipt.encoding import remove_emojis


class JobStatus(Enum):
    PENDING = 'pending'
    PRINTING = 'printing'
    COMPLETED = 'completed'
    FAILED = 'failed'

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    def can_transition(self, to: 'JobStatus') -> bool:
        """Pending -> Printing -> Completed | Failed, nothing else."""
        if self is JobStatus.PENDING:
            return to is JobStatus.PRINTING
        if self is JobStatus.PRINTING:
            return to.is_terminal
        return False


@dataclass(frozen=True)
class PrintJob:
    id: str
    transaction_hash: str = ''
    amount_raw: str = '0'          # wei, decimal or 0x-prefixed hex
    token: str = ''
    from_address: str = ''
    to_address: str = ''
    timestamp: str = ''            # ISO-8601 UTC
    product_name: Optional[str] = None

    @classmethod
    def from_item(cls, item: dict) -> 'PrintJob':
        """Build a PrintJob from one entry of the queue's ``items`` array."""
        if not isinstance(item, dict):
            raise ParseError(f"Queue item is not an object: {item!r}")

        def _str(val, default=''):
            return default if val is None else str(val)

        job_id = _str(item.get('id')).strip()
        if not job_id:
            raise ParseError("Queue item has no id", {'item': item})

        product = item.get('productName')
        if product is not None:
            product = remove_emojis(str(product)).strip() or None

        return cls(
            id=job_id,
            transaction_hash=_str(item.get('transactionHash')),
            amount_raw=_str(item.get('amount'), '0').strip(),
            token=_str(item.get('token')),
            from_address=_str(item.get('fromAddress')),
            to_address=_str(item.get('toAddress')),
            timestamp=_str(item.get('timestamp')),
            product_name=product,
        )

    def __str__(self):
        return (
            f"PrintJob(id={self.id} tx={self.transaction_hash[:10]} "
            f"amount={self.amount_raw} token={self.token})"
        )
