from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

CompositeKey = Tuple[str, str, str, str]


@dataclass
class TransactionRecord:
    date: str
    card_details: str
    order_number: str
    total_amount: str
    products: List[str] = field(default_factory=list)

    @property
    def composite_key(self) -> CompositeKey:
        return (self.date, self.card_details, self.order_number, self.total_amount)

    def is_blank(self) -> bool:
        return not (self.date or self.card_details or self.order_number or self.total_amount)
