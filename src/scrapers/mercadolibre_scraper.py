# src/scrapers/mercadolibre_scraper.py

"""Resolves products against MercadoLibre Argentina search results."""

import urllib.parse

from bs4 import BeautifulSoup, Tag

from src.filters.query_builder import QueryBuilder
from src.models.product import Condition, ListingResult, ProductMetadata
from src.scrapers.base_scraper import BaseScraper
from src.scrapers.extraction_rules import (
    Rule,
    attr_rule,
    contains_rule,
    first_match,
    price_rule,
    text_rule,
)
from src.services.exceptions import ResolverUnavailable

TITLE_NOT_FOUND = "Title not found"


class MercadoLibreResolver(BaseScraper):
    """Scraper for listado.mercadolibre.com.ar.

    Only the first results page is read and only the first
    ``MAX_LISTINGS`` cards on it are kept, in page order.  Each field is
    pulled with an ordered list of selector rules from ``selectors.json``.
    """

    def __init__(self) -> None:
        super().__init__("mercadolibre")
        self.title_rules: list[Rule[str]] = [
            text_rule(s) for s in self.selectors.get("title", [])
        ]
        self.price_rules: list[Rule[int]] = [
            price_rule(s) for s in self.selectors.get("price", [])
        ]
        self.url_rules: list[Rule[str]] = [
            attr_rule(s, "href") for s in self.selectors.get("url", [])
        ]
        self.thumbnail_rules: list[Rule[str]] = [
            attr_rule(s, "src", "data-src")
            for s in self.selectors.get("thumbnail", [])
        ]
        self.used_rules: list[Rule[bool]] = [
            contains_rule(s, self.settings.USED_TOKEN)
            for s in self.selectors.get("condition", [])
        ]

    def _get_homepage(self) -> str:
        """Return the MercadoLibre Argentina homepage URL."""
        return self.settings.MARKETPLACE_HOMEPAGE

    def build_search_url(self, query: str) -> str:
        """Search URL for *query*."""
        return self.settings.MARKETPLACE_SEARCH_URL.format(
            query=urllib.parse.quote(query)
        )

    def _find_cards(self, soup: BeautifulSoup) -> list[Tag] | None:
        """Return result cards, or None if no results container exists."""
        container: Tag | None = None
        for selector in self.selectors.get("results_container", []):
            container = soup.select_one(selector)
            if container is not None:
                break
        if container is None:
            return None
        for selector in self.selectors.get("product_card", []):
            cards = container.select(selector)
            if cards:
                return list(cards)
        return []

    @staticmethod
    def _listing_id(permalink: str, position: int) -> str:
        """Last path segment of the permalink, or a positional id."""
        path = urllib.parse.urlparse(permalink).path
        segment = path.rstrip("/").rsplit("/", 1)[-1]
        return segment or f"scraped-{position}"

    def _parse_card(self, card: Tag, position: int) -> ListingResult:
        """Parse a single result card into a ListingResult."""
        href = first_match(self.url_rules, card) or ""
        permalink = (
            urllib.parse.urljoin(self._get_homepage(), href)
            if href
            else ""
        )
        is_used = first_match(self.used_rules, card)
        return ListingResult(
            id=self._listing_id(permalink, position),
            title=first_match(self.title_rules, card) or TITLE_NOT_FOUND,
            price=first_match(self.price_rules, card) or 0,
            permalink=permalink,
            thumbnail=first_match(self.thumbnail_rules, card) or "",
            condition=Condition.USED if is_used else Condition.NEW,
        )

    def parse_results(self, soup: BeautifulSoup) -> list[ListingResult]:
        """Extract up to MAX_LISTINGS listings from a results page."""
        cards = self._find_cards(soup)
        if cards is None:
            self.logger.warning(
                "[mercadolibre] Results container not found on page"
            )
            return []

        listings: list[ListingResult] = []
        for position, card in enumerate(
            cards[: self.settings.MAX_LISTINGS], 1
        ):
            try:
                listings.append(self._parse_card(card, position))
            except Exception as exc:
                self.logger.error(
                    "[mercadolibre] Error extracting product %d: %s",
                    position,
                    exc,
                    exc_info=True,
                )
        return listings

    def resolve(self, metadata: ProductMetadata) -> list[ListingResult]:
        """Search the marketplace for *metadata* and return its listings.

        An empty list is a normal outcome (nothing found, or metadata too
        thin to search for).

        Raises:
            ResolverUnavailable: the results page could not be fetched
                within the configured timeout.
        """
        if not metadata.is_searchable:
            self.logger.warning(
                "[mercadolibre] Metadata lacks category or title, "
                "skipping search"
            )
            return []

        query = QueryBuilder.build(metadata)
        url = self.build_search_url(query)
        self.logger.info(
            "[mercadolibre] Searching for '%s' at %s", query, url
        )

        soup = self._get_page(url)
        if soup is None:
            raise ResolverUnavailable(
                f"Marketplace unreachable for query '{query}'",
                details={"url": url},
            )

        listings = self.parse_results(soup)
        self.logger.info(
            "[mercadolibre] Scraped %d products for '%s'",
            len(listings),
            query,
        )
        return listings
