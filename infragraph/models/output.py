"""
Resolved output values.

Dependencies: dataclasses (stdlib)
System role: Output resolver results
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class OutputValue:
    """
    Value of one declared output after apply.

    Attributes:
        name: Output name
        value: Realized attribute value, None when unresolved
        resolved: False when the source node never reached ``created``
        sensitive: Mask the value in human readable rendering
        source: Address and attribute the value was read from
    """

    name: str
    value: Any
    resolved: bool
    sensitive: bool = False
    source: str = ""

    def display(self) -> str:
        if not self.resolved:
            return "(unresolved)"
        if self.sensitive:
            return "(sensitive)"
        return repr(self.value) if not isinstance(self.value, str) else self.value
