"""Read access to reference catalogs.

Only the catalogs in ``CatalogName`` can be queried. The name is checked
against that closed set before any statement is built.
"""

from enum import Enum
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from licencias.core.exceptions import DatabaseError, ValidationError
from licencias.database.models import CATALOG_TABLES
from licencias.utils.logging import get_logger

LOGGER = get_logger(__name__)


class CatalogName(str, Enum):
    DOCUMENT_TYPES = "document_types"
    MARITAL_STATUS = "marital_status"
    ACADEMIC_MODALITIES = "academic_modalities"
    INSTITUTIONS = "institutions"
    REPORT_PERIODS = "report_periods"

    @classmethod
    def parse(cls, value: str) -> "CatalogName":
        try:
            return cls(value)
        except ValueError as e:
            raise ValidationError(f"Unknown catalog: {value}", original_error=e, details={"catalog": value}) from e


class CatalogRepository:
    """Repository for allow-listed catalog tables."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_entries(self, name: str) -> List[Dict[str, Any]]:
        """List every entry of a catalog ordered by name.

        Args:
            name: Catalog name, one of ``CatalogName``

        Returns:
            Rows as plain dictionaries

        Raises:
            ValidationError: If the catalog is not allow-listed
        """
        catalog = CatalogName.parse(name)
        table = CATALOG_TABLES[catalog.value]

        stmt = select(table).order_by(table.c.name)
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            LOGGER.error(f"Failed to read catalog {catalog.value}: {str(e)}", exc_info=True)
            raise DatabaseError(f"Failed to read catalog {catalog.value}", original_error=e) from e
        rows = [dict(row) for row in result.mappings().all()]
        LOGGER.debug(f"Loaded {len(rows)} entries from catalog {catalog.value}")
        return rows
