from .schemas import SCHEMAS, ColumnSpec, TableSchema
from .tables import StudyTables

__all__ = ["SCHEMAS", "ColumnSpec", "TableSchema", "StudyTables"]
