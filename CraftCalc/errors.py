"""
Error and warning taxonomy for the crafting calculator.

Errors are raised by stores and validation and caught at the mutation
gateway and cache boundaries. Warnings describe data-quality problems found
during resolution; they are logged, never raised.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class CalculatorError(RuntimeError):
    """Base error for all calculator operations."""


class NotFoundError(CalculatorError):
    """No catalog item with the given id exists in the slice."""

    def __init__(self, kind: str, item_id: Any) -> None:
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} item with ID {item_id!r} not found")


class ValidationError(CalculatorError):
    """A catalog item or update payload is malformed."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.detail = message
        super().__init__(f"Validation error for field '{field}': {message}")


class DuplicateIdError(CalculatorError):
    """The id is already used somewhere in the catalog."""

    def __init__(self, item_id: Any, kind: Optional[str] = None) -> None:
        self.item_id = item_id
        self.kind = kind
        where = f" in {kind}" if kind else ""
        super().__init__(f"Item with ID {item_id!r} already exists{where}")


class InvalidKindError(CalculatorError):
    """The item kind is not one of raw / intermediate / crafted."""

    def __init__(self, kind: Any, valid: Iterable[str] = ("raw", "intermediate", "crafted")) -> None:
        self.kind = kind
        super().__init__(f"Invalid item kind: {kind!r}. Must be one of: {', '.join(valid)}")


class CatalogLoadError(CalculatorError):
    """A catalog store could not read or write its source."""

    def __init__(self, source: str, detail: str) -> None:
        self.source = source
        self.detail = detail
        super().__init__(f"Catalog load failed for {source}: {detail}")


# ---------------------------------------------------------------------------
# Warnings (logged, never raised)
# ---------------------------------------------------------------------------

class ResolutionWarning(UserWarning):
    """Base class for non-fatal resolution problems."""


class CircularDependencyWarning(ResolutionWarning):
    def __init__(self, identifier: Any, path: Iterable[Any] = ()) -> None:
        self.identifier = identifier
        self.path = tuple(path)
        super().__init__(f"Circular dependency detected for {identifier!r}")


class UnknownComponentWarning(ResolutionWarning):
    def __init__(self, identifier: Any) -> None:
        self.identifier = identifier
        super().__init__(f"Component {identifier!r} not found in catalog")


class DepthLimitWarning(ResolutionWarning):
    def __init__(self, identifier: Any, depth: int) -> None:
        self.identifier = identifier
        self.depth = depth
        super().__init__(f"Recipe depth limit {depth} reached at {identifier!r}")


class TerminalItemWarning(ResolutionWarning):
    """A craftable item without recipe components, counted as a material."""

    def __init__(self, identifier: Any, kind: str) -> None:
        self.identifier = identifier
        self.kind = kind
        super().__init__(f"{kind} item {identifier!r} has no recipe components; "
                         "counted as a terminal material")


class MalformedBillEntryWarning(ResolutionWarning):
    def __init__(self, position: int, reason: str) -> None:
        self.position = position
        self.reason = reason
        super().__init__(f"Skipping bill entry {position}: {reason}")


# ---------------------------------------------------------------------------
# Mutation results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MutationResult:
    """
    Uniform outcome of a gateway call.

    Invariants:
        - success is True iff error is None
        - data carries the affected item dict on success
    """
    success: bool
    message: str
    data: Any = None
    error: Optional[CalculatorError] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "MutationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, error: CalculatorError) -> "MutationResult":
        return cls(success=False, message=message, error=error)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.success:
            result["data"] = self.data
        else:
            result["error"] = str(self.error)
        return result

    def __bool__(self) -> bool:
        return self.success
