"""Task graph for closing a treatment session."""

from collections.abc import Iterable
from dataclasses import dataclass

NONE_INSTRUCTION = "none"
DISPENSE_PREFIX = "dispense:"


@dataclass(frozen=True)
class TaskGraph:
    """Subtasks a student must finish before the patient counts as recovered."""

    dispense: tuple[str, ...] = ()
    counsel: str = "counsel"
    billing: str = "billing"
    accepted_instructions: frozenset[str] | None = None

    def __post_init__(self) -> None:
        ids = self.required_ids
        if len(ids) != len(self.dispense) + 2:
            raise ValueError("Task ids must be unique within a graph")

    @classmethod
    def for_prescription(
        cls,
        item_ids: Iterable[str],
        accepted_instructions: Iterable[str] | None = None,
    ) -> "TaskGraph":
        """Build a graph with one dispensing task per prescribed item."""
        return cls(
            dispense=tuple(f"{DISPENSE_PREFIX}{item_id}" for item_id in item_ids),
            accepted_instructions=(
                frozenset(accepted_instructions)
                if accepted_instructions is not None
                else None
            ),
        )

    @property
    def required_ids(self) -> frozenset[str]:
        return frozenset((*self.dispense, self.counsel, self.billing))

    def contains(self, task_id: str) -> bool:
        """Return true when the task id belongs to this graph."""
        return task_id in self.required_ids

    def is_complete(self, completed: Iterable[str]) -> bool:
        """Return true when every required task has been completed."""
        return self.required_ids <= frozenset(completed)

    def pending(self, completed: Iterable[str]) -> list[str]:
        """Return required task ids not yet completed, in stage order."""
        done = frozenset(completed)
        ordered = [*self.dispense, self.counsel, self.billing]
        return [task_id for task_id in ordered if task_id not in done]

    def to_dict(self) -> dict[str, object]:
        return {
            "dispense": list(self.dispense),
            "counsel": self.counsel,
            "billing": self.billing,
            "accepted_instructions": (
                sorted(self.accepted_instructions)
                if self.accepted_instructions is not None
                else None
            ),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, object]) -> "TaskGraph":
        dispense = raw.get("dispense") or []
        accepted = raw.get("accepted_instructions")
        return cls(
            dispense=tuple(str(task_id) for task_id in dispense),  # type: ignore[union-attr]
            counsel=str(raw.get("counsel", "counsel")),
            billing=str(raw.get("billing", "billing")),
            accepted_instructions=(
                frozenset(str(item) for item in accepted)  # type: ignore[union-attr]
                if accepted is not None
                else None
            ),
        )


def counselling_problem(
    graph: TaskGraph, instruction_ids: Iterable[str]
) -> str | None:
    """Return why a counselling submission is invalid, or None if it is valid."""
    given = [item.strip() for item in instruction_ids if item.strip()]
    if not given:
        return "At least one instruction is required. Select 'none' if applicable."
    if len(set(given)) != len(given):
        return "Instructions must not repeat."
    if any(item.lower() == NONE_INSTRUCTION for item in given):
        if len(given) > 1:
            return "'none' cannot be combined with other instructions."
        return None
    if graph.accepted_instructions is not None:
        rejected = [item for item in given if item not in graph.accepted_instructions]
        if rejected:
            return f"Instructions not accepted for this patient: {', '.join(rejected)}"
    return None
