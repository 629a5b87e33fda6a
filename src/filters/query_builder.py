# src/filters/query_builder.py

"""Builds marketplace search queries from extracted product metadata."""

import logging

from src.models.product import ProductMetadata

logger = logging.getLogger("product_finder.filters")


class QueryBuilder:
    """Turn product metadata into a marketplace search query."""

    @staticmethod
    def build(metadata: ProductMetadata) -> str:
        """Return ``"<category> <title>"`` plus the author or brand.

        The author takes priority; the brand is only used when no author
        was extracted.  At most one of the two is appended.
        """
        query = f"{metadata.category} {metadata.title}"
        if metadata.author:
            query += f" {metadata.author}"
        elif metadata.brand:
            query += f" {metadata.brand}"
        query = " ".join(query.split())
        logger.debug("Built marketplace query: '%s'", query)
        return query
