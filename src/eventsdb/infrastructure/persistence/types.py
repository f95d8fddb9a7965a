"""Row-version column type and per-dialect DDL.

Hey future me - SQL Server has a real ROWVERSION type: the server bumps it on every INSERT and
UPDATE and the application can't write it. SQLite has nothing like that, so we fake the same
contract with storage-side machinery only:

- the column is an 8-byte BLOB with DEFAULT (randomblob(8)) -> new rows get a token
- an AFTER UPDATE trigger writes a fresh randomblob(8) -> every mutation changes the token

Either way the application never assigns the value. The ORM maps it with
version_id_generator=False and reads the new token back after each flush.
"""

from typing import Any

from sqlalchemy import DDL, LargeBinary, Table, event
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.types import TypeDecorator

ROW_VERSION_LENGTH = 8


class RowVersion(TypeDecorator[bytes]):
    """Opaque, storage-maintained version token (ROWVERSION / BLOB)."""

    impl = LargeBinary
    cache_ok = True

    def __init__(self) -> None:
        super().__init__(length=ROW_VERSION_LENGTH)

    def process_result_value(self, value: Any, dialect: Any) -> bytes | None:
        """Drivers hand back bytes, bytearray or memoryview - normalize to bytes."""
        if value is None:
            return None
        return bytes(value)


@compiles(RowVersion, "mssql")
def _compile_rowversion_mssql(type_: RowVersion, compiler: Any, **kw: Any) -> str:
    return "ROWVERSION"


@compiles(RowVersion, "sqlite")
def _compile_rowversion_sqlite(type_: RowVersion, compiler: Any, **kw: Any) -> str:
    return f"BLOB DEFAULT (randomblob({ROW_VERSION_LENGTH}))"


@compiles(RowVersion)
def _compile_rowversion_default(type_: RowVersion, compiler: Any, **kw: Any) -> str:
    return compiler.process(LargeBinary(ROW_VERSION_LENGTH), **kw)


def sqlite_row_version_trigger_sql(table_name: str, column_name: str) -> str:
    """CREATE TRIGGER statement that refreshes the token on every UPDATE."""
    # The WHEN guard keeps the trigger's own UPDATE from firing it again
    return (
        f'CREATE TRIGGER IF NOT EXISTS "trg_{table_name}_{column_name}" '
        f'AFTER UPDATE ON "{table_name}" FOR EACH ROW '
        f'WHEN NEW."{column_name}" IS OLD."{column_name}" '
        f'BEGIN UPDATE "{table_name}" SET "{column_name}" = '
        f"randomblob({ROW_VERSION_LENGTH}) WHERE rowid = NEW.rowid; END"
    )


def install_sqlite_row_version_trigger(table: Table, column_name: str) -> None:
    """Attach the trigger DDL to the table's after_create event (SQLite only)."""
    event.listen(
        table,
        "after_create",
        DDL(sqlite_row_version_trigger_sql(table.name, column_name)).execute_if(
            dialect="sqlite"
        ),
    )
