"""
Secure Query Builder Module

This module provides secure, parameterized query building functions to prevent SQL injection attacks.
Table and column identifiers are validated and quoted; range bounds are always passed as parameters.
"""

import logging
import re
from datetime import date, datetime
from typing import Any, Iterable, List, Tuple, Union

logger = logging.getLogger(__name__)

Bound = Union[datetime, date]


class SecureQueryBuilder:
    """Secure query builder with parameterized queries and input validation."""

    IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

    @classmethod
    def validate_identifier(cls, identifier: str) -> bool:
        """
        Validate a table or column identifier.

        Args:
            identifier: Identifier to validate

        Returns:
            bool: True if the identifier is safe to quote into a query
        """
        if not identifier or len(identifier) > 63:
            return False
        return bool(cls.IDENTIFIER_PATTERN.match(identifier))

    def quote_identifier(self, identifier: str) -> str:
        """
        Double-quote a validated identifier (keeps camelCase column names intact).

        Raises:
            ValueError: If the identifier fails validation
        """
        if not self.validate_identifier(identifier):
            raise ValueError(f"Invalid SQL identifier: {identifier!r}")
        return f'"{identifier}"'

    def build_range_query(
        self,
        table: str,
        columns: Iterable[str],
        timestamp_column: str,
        start: Bound,
        end: Bound
    ) -> Tuple[str, List[Any]]:
        """
        Build secure parameterized query for all rows whose timestamp falls in [start, end).

        Args:
            table: Source table name
            columns: Columns to select
            timestamp_column: Column compared against the bounds
            start: Inclusive lower bound (UTC instant, or date for date columns)
            end: Exclusive upper bound

        Returns:
            Tuple[str, List[Any]]: (query_string, parameters)

        Example:
            >>> query, params = secure_query_builder.build_range_query(
            ...     "Sewing", ["operationDate", "operationType", "C1"], "operationDate", start, end
            ... )
            >>> params == [start, end]
            True
        """
        if end <= start:
            raise ValueError(f"Range end {end} must be after start {start}")

        selected = [self.quote_identifier(column) for column in columns]
        if not selected:
            raise ValueError("columns cannot be empty")

        ts = self.quote_identifier(timestamp_column)
        query = (
            f"SELECT {', '.join(selected)} "
            f"FROM {self.quote_identifier(table)} "
            f"WHERE {ts} >= %s AND {ts} < %s "
            f"ORDER BY {ts} ASC;"
        )
        parameters = [start, end]

        logger.info(f"Built secure range query on {table} for {start} to {end}")
        return query, parameters


# Global instance for convenience
secure_query_builder = SecureQueryBuilder()
