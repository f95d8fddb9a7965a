"""Domain entities."""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import ClassVar, Generic, TypeVar

from eventsdb.domain.exceptions import ValidationException

TId = TypeVar("TId")

TITLE_MAX_LENGTH = 80
CURRENCY_CODE_LENGTH = 3


# Hey future me, the version token (timestamp) is OWNED BY THE DATABASE. Application code
# never assigns it - it's None on a fresh entity and gets filled in after the INSERT/UPDATE
# is flushed. On SQL Server it's a rowversion, on SQLite an 8-byte random blob refreshed by
# a trigger. Treat it as opaque bytes: only equality means anything.
@dataclass(kw_only=True)
class PersistedObject:
    """Base for anything stored with an optimistic-concurrency version token."""

    timestamp: bytes | None = None

    @property
    def timestamp_hex(self) -> str:
        """Version token as 0x-prefixed uppercase hex (empty string if not yet stored)."""
        if not self.timestamp:
            return ""
        return "0x" + self.timestamp.hex().upper()


@dataclass(kw_only=True)
class Entity(PersistedObject, Generic[TId]):
    """Persisted object with a single identity value."""

    id: TId | None = None

    @property
    def is_transient(self) -> bool:
        """True until the database has assigned an identity."""
        return self.id is None


@dataclass
class Price(PersistedObject):
    """Price of an occurrence in one currency.

    Keyed by (occurrence_id, currency). The occurrence back-reference is only for
    traversal; it is excluded from equality and repr so the graph doesn't recurse.
    """

    occurrence_id: int
    currency: str
    value: Decimal
    occurrence: "Occurrence | None" = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Normalize and validate the currency code."""
        code = self.currency.strip().upper() if isinstance(self.currency, str) else ""
        if len(code) != CURRENCY_CODE_LENGTH or not code.isalpha():
            raise ValidationException(
                f"Currency must be a {CURRENCY_CODE_LENGTH}-letter code, got {self.currency!r}"
            )
        self.currency = code
        if not isinstance(self.value, Decimal):
            try:
                self.value = Decimal(str(self.value))
            except InvalidOperation as e:
                raise ValidationException(f"Price value must be numeric, got {self.value!r}") from e
        if not self.value.is_finite():
            raise ValidationException(f"Price value must be finite, got {self.value}")

    @property
    def key(self) -> tuple[int, str]:
        """Composite primary key."""
        return (self.occurrence_id, self.currency)


@dataclass
class Occurrence(Entity[int]):
    """An event occurrence with zero or more prices."""

    title: str
    prices: list[Price] = field(default_factory=list)

    MAX_TITLE_LENGTH: ClassVar[int] = TITLE_MAX_LENGTH

    def __post_init__(self) -> None:
        """Validate title length against the column size."""
        self._validate_title(self.title)

    def rename(self, title: str) -> None:
        """Change the title, keeping the same validation as construction."""
        self._validate_title(title)
        self.title = title

    @classmethod
    def _validate_title(cls, title: str) -> None:
        if not isinstance(title, str):
            raise ValidationException("Occurrence title is required")
        if len(title) > cls.MAX_TITLE_LENGTH:
            raise ValidationException(f"Occurrence title exceeds {cls.MAX_TITLE_LENGTH} characters")

    def describe(self) -> str:
        """One-line rendering used by the CLI: ``<title> (<token>)``."""
        return f"{self.title} ({self.timestamp_hex})"


__all__ = [
    "CURRENCY_CODE_LENGTH",
    "TITLE_MAX_LENGTH",
    "Entity",
    "Occurrence",
    "PersistedObject",
    "Price",
]
