"""
Selection of tests and packages for a bill or a test package.

Options are identified by their display id (``test_12``, ``package_3``),
which is unique per catalog; the backend id is what gets sent to the server.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Iterator, List, Optional

from .calculator import LineItem, sum_prices
from .choices import ItemType


def display_id_for(item_type: str, backend_id: int) -> str:
    prefix = 'package' if item_type == ItemType.PACKAGE else 'test'
    return f"{prefix}_{backend_id}"


@dataclass(frozen=True)
class TestOption:
    __test__ = False  # keep pytest from collecting this as a test class

    display_id: str
    backend_id: int
    name: str
    price: Decimal
    item_type: str = ItemType.TEST

    @classmethod
    def from_backend(cls, backend_id: int, name: str, price: Decimal, item_type: str = ItemType.TEST):
        return cls(display_id_for(item_type, backend_id), backend_id, name, price, item_type)

    def as_line_item(self) -> LineItem:
        return LineItem(name=self.name, item_type=self.item_type, unit_price=self.price)


class TestSelection:
    """
    Ordered, duplicate-free list of selected options.

    Insertion order is the order shown to the user and the order sent to the
    backend. Removing an option and adding it again puts it at the end.
    """
    __test__ = False

    def __init__(self, options: Iterable[TestOption] = ()):
        self._options: List[TestOption] = []
        for option in options:
            self.add(option)

    def __iter__(self) -> Iterator[TestOption]:
        return iter(self._options)

    def __len__(self) -> int:
        return len(self._options)

    def __contains__(self, display_id: str) -> bool:
        return self.get(display_id) is not None

    def get(self, display_id: str) -> Optional[TestOption]:
        for option in self._options:
            if option.display_id == display_id:
                return option
        return None

    def add(self, option: TestOption) -> bool:
        """Append the option; returns False when it was already selected."""
        if option.display_id in self:
            return False
        self._options.append(option)
        return True

    def remove(self, display_id: str) -> bool:
        """Drop the option; returns False when it was not selected."""
        option = self.get(display_id)
        if option is None:
            return False
        self._options.remove(option)
        return True

    @property
    def options(self) -> List[TestOption]:
        return list(self._options)

    @property
    def subtotal(self) -> Decimal:
        return sum_prices(option.price for option in self._options)

    def available(self, catalog: Iterable[TestOption]) -> List[TestOption]:
        """Catalog entries that are not selected yet, in catalog order."""
        return [option for option in catalog if option.display_id not in self]

    def backend_ids(self) -> List[int]:
        return [option.backend_id for option in self._options]

    def line_items(self) -> List[LineItem]:
        return [option.as_line_item() for option in self._options]
