"""
Result types returned by the validation engine.

Validation never raises for bad input; callers inspect these objects instead.
``ValidationResult.is_valid`` is derived from ``errors`` so the two can never
disagree.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

CROSS_FIELD_TYPE = 'cross-field'


@dataclass(frozen=True)
class FieldError:
    """A single failed rule for one field."""

    field: str
    rule: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {'field': self.field, 'rule': self.rule, 'message': self.message}


@dataclass(frozen=True)
class CrossFieldError:
    """A failed invariant spanning several fields."""

    fields: Tuple[str, ...]
    message: str
    type: str = CROSS_FIELD_TYPE

    def to_dict(self) -> Dict[str, Any]:
        return {'fields': list(self.fields), 'message': self.message, 'type': self.type}


ErrorEntry = Union[FieldError, CrossFieldError]


@dataclass(frozen=True)
class CrossFieldRule:
    """
    Invariant over a whole record.

    ``test`` receives the full record and returns True when the invariant holds.
    """

    fields: Tuple[str, ...]
    test: Callable[[Mapping[str, Any]], bool]
    message: str


@dataclass
class FieldResult:
    """Outcome of validating one value: empty ``errors`` means it passed."""

    field: str
    errors: List[FieldError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class ValidationResult:
    """
    Outcome of validating a record against a schema.

    ``errors`` maps field names (or ``_``-prefixed group keys such as the
    cross-field key) to ordered error lists. ``valid_fields`` keeps schema order.
    """

    errors: Dict[str, List[ErrorEntry]] = field(default_factory=dict)
    valid_fields: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_error(self, key: str, error: ErrorEntry) -> None:
        self.errors.setdefault(key, []).append(error)

    def messages(self) -> Dict[str, List[str]]:
        """Field -> list of messages, the shape ``ValidationError`` expects."""
        return {key: [error.message for error in errors] for key, errors in self.errors.items()}

    def first_error(self) -> Optional[str]:
        """Message of the first reported error, or None when valid."""
        for errors in self.errors.values():
            if errors:
                return errors[0].message
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'errors': {
                key: [error.to_dict() for error in errors]
                for key, errors in self.errors.items()
            },
            'valid_fields': list(self.valid_fields),
            'data': dict(self.data),
        }


@dataclass
class CrossFieldResult:
    errors: List[CrossFieldError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class BatchItemResult:
    index: int
    result: ValidationResult


@dataclass
class BatchValidationResult:
    """Per-item results of ``validate_batch`` plus counts."""

    results: List[BatchItemResult] = field(default_factory=list)

    @property
    def valid_count(self) -> int:
        return sum(1 for item in self.results if item.result.is_valid)

    @property
    def invalid_count(self) -> int:
        return len(self.results) - self.valid_count

    @property
    def is_valid(self) -> bool:
        return self.invalid_count == 0


Schema = Mapping[str, Sequence[str]]
