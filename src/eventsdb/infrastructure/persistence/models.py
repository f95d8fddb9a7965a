"""SQLAlchemy ORM models for eventsdb.

Table and column names match the existing SQL Server schema exactly (PascalCase,
unprefixed), so the models map onto a database created by the Alembic migration or
by hand with the original DDL.
"""

from decimal import Decimal

from sqlalchemy import (
    CHAR,
    FetchedValue,
    ForeignKey,
    Integer,
    Numeric,
    PrimaryKeyConstraint,
    Unicode,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from eventsdb.domain.entities import (
    CURRENCY_CODE_LENGTH,
    TITLE_MAX_LENGTH,
    Occurrence,
    Price,
)

from .types import RowVersion, install_sqlite_row_version_trigger


class Base(DeclarativeBase):
    """Base class for all ORM models.

    All models inherit from this to use the same metadata registry.
    """

    pass


# Hey future me, implicit_returning=False is NOT optional here! On SQLite the new token is
# written by an AFTER UPDATE trigger, and RETURNING reports the row as the statement left it,
# before the trigger ran. With RETURNING off, the ORM issues a follow-up SELECT for the
# server-generated version column and gets the trigger's value.
class OccurrenceModel(Base):
    """SQLAlchemy model for the Occurrence table."""

    __tablename__ = "Occurrence"
    __table_args__ = (
        PrimaryKeyConstraint("Id", name="pk_Occurrence"),
        {"implicit_returning": False},
    )

    id: Mapped[int] = mapped_column("Id", Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column("Title", Unicode(TITLE_MAX_LENGTH), nullable=False)
    timestamp: Mapped[bytes] = mapped_column(
        "Timestamp",
        RowVersion(),
        nullable=False,
        server_default=FetchedValue(),
        server_onupdate=FetchedValue(),
    )

    # lazy="raise" - async sessions can't lazy load, so every query must say how it loads prices
    prices: Mapped[list["PriceModel"]] = relationship(
        back_populates="occurrence",
        lazy="raise",
        order_by="PriceModel.currency",
    )

    __mapper_args__ = {
        "version_id_col": timestamp,
        "version_id_generator": False,
        "eager_defaults": True,
    }

    def to_entity(self) -> Occurrence:
        """Convert to domain entity. Only call this when the query eager loaded prices."""
        occurrence = Occurrence(id=self.id, title=self.title, timestamp=self.timestamp)
        for price_model in self.prices:
            price = price_model.to_entity()
            price.occurrence = occurrence
            occurrence.prices.append(price)
        return occurrence

    @classmethod
    def from_entity(cls, occurrence: Occurrence) -> "OccurrenceModel":
        """Build a new (unflushed) model; id and token come from the database."""
        return cls(title=occurrence.title)


class PriceModel(Base):
    """SQLAlchemy model for the Price table."""

    __tablename__ = "Price"
    __table_args__ = (
        PrimaryKeyConstraint("OccurrenceId", "Currency", name="pk_Price"),
        {"implicit_returning": False},
    )

    occurrence_id: Mapped[int] = mapped_column(
        "OccurrenceId",
        Integer,
        ForeignKey("Occurrence.Id", name="fk_Price_Occurrence"),
        primary_key=True,
        autoincrement=False,
    )
    currency: Mapped[str] = mapped_column(
        "Currency", CHAR(CURRENCY_CODE_LENGTH), primary_key=True
    )
    # Plain "decimal" in the original DDL, which SQL Server reads as decimal(18, 0)
    value: Mapped[Decimal] = mapped_column(
        "Value", Numeric(18, 0, asdecimal=True), nullable=False
    )
    timestamp: Mapped[bytes] = mapped_column(
        "Timestamp",
        RowVersion(),
        nullable=False,
        server_default=FetchedValue(),
        server_onupdate=FetchedValue(),
    )

    occurrence: Mapped[OccurrenceModel] = relationship(
        back_populates="prices", lazy="raise"
    )

    __mapper_args__ = {
        "version_id_col": timestamp,
        "version_id_generator": False,
        "eager_defaults": True,
    }

    def to_entity(self) -> Price:
        """Convert to domain entity (without the back-reference)."""
        return Price(
            occurrence_id=self.occurrence_id,
            currency=self.currency,
            value=self.value,
            timestamp=self.timestamp,
        )

    @classmethod
    def from_entity(cls, price: Price) -> "PriceModel":
        """Build a new (unflushed) model."""
        return cls(
            occurrence_id=price.occurrence_id,
            currency=price.currency,
            value=price.value,
        )


install_sqlite_row_version_trigger(OccurrenceModel.__table__, "Timestamp")  # type: ignore[arg-type]
install_sqlite_row_version_trigger(PriceModel.__table__, "Timestamp")  # type: ignore[arg-type]
