"""
Status lifecycles for fees and complaints.

One table of allowed moves per entity. Ledger code checks the lifecycle
before writing a new status.
"""

from typing import Dict, FrozenSet

from exceptions import InvalidTransitionError


class Lifecycle:
    def __init__(self, entity: str, transitions: Dict[str, FrozenSet[str]], terminal: FrozenSet[str]):
        self.entity = entity
        self.transitions = transitions
        self.terminal = terminal

    @property
    def states(self) -> FrozenSet[str]:
        return frozenset(self.transitions) | self.terminal

    def can_move(self, current: str, target: str) -> bool:
        return target in self.transitions.get(current, frozenset())

    def check(self, current: str, target: str) -> None:
        if not self.can_move(current, target):
            raise InvalidTransitionError(self.entity, current, target)

    def is_terminal(self, status: str) -> bool:
        return status in self.terminal


# paid is terminal
FEE_LIFECYCLE = Lifecycle(
    "fee",
    {
        "pending": frozenset({"paid", "overdue"}),
        "overdue": frozenset({"paid"}),
    },
    terminal=frozenset({"paid"}),
)

# resolve is reachable straight from pending
COMPLAINT_LIFECYCLE = Lifecycle(
    "complaint",
    {
        "pending": frozenset({"in-progress", "resolved"}),
        "in-progress": frozenset({"resolved"}),
    },
    terminal=frozenset({"resolved"}),
)
