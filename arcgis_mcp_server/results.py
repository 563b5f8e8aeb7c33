"""
Reduce an applyEdits result array to a single verdict.

The reduction works for batches of any size, even though every tool
submits exactly one feature per request.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from .errors import EditFailed, PartialEditFailure
from .models import EditOutcome


@dataclass(frozen=True)
class EditVerdict:
    kind: str
    outcomes: List[EditOutcome]

    @property
    def has_results(self) -> bool:
        return len(self.outcomes) > 0

    @property
    def all_succeeded(self) -> bool:
        return all(o.success for o in self.outcomes)

    @property
    def success(self) -> bool:
        return self.has_results and self.all_succeeded

    @property
    def failed(self) -> List[EditOutcome]:
        return [o for o in self.outcomes if not o.success]

    def summary(self) -> Dict[str, Any]:
        return {
            "totalUpdated": len(self.outcomes),
            "results": [o.to_json() for o in self.outcomes],
        }

    def to_response(self) -> Dict[str, Any]:
        return {"success": self.success, **self.summary()}

    def raise_for_failure(self) -> None:
        """Raise EditFailed or PartialEditFailure unless every outcome succeeded."""
        if not self.has_results:
            raise EditFailed(
                f"{self.kind} returned no results; the edit was not applied",
                verdict=self,
            )
        if not self.all_succeeded:
            errors = "; ".join(o.error or "unknown error" for o in self.failed)
            raise PartialEditFailure(
                f"{len(self.failed)} of {len(self.outcomes)} {self.kind} edit(s) failed: {errors}",
                verdict=self,
            )


def interpret_edit_results(kind: str, raw_results: Iterable[Any]) -> EditVerdict:
    return EditVerdict(
        kind=kind,
        outcomes=[EditOutcome.from_json(item) for item in raw_results],
    )
