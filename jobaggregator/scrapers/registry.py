"""Scraper registry — maps scraper ids to scraper classes."""

import inspect
import logging

from jobaggregator.scrapers.base import BaseScraper
from jobaggregator.scrapers.linkedin import LinkedInJobsScraper
from jobaggregator.scrapers.oficina_cei import OficinaDeTrabajoCeiScraper

logger = logging.getLogger(__name__)

DEFAULT_SCRAPERS: dict[str, type[BaseScraper]] = {
    "oficina-trabajo-cei": OficinaDeTrabajoCeiScraper,
    "linkedin": LinkedInJobsScraper,
}


class ScraperNotFoundError(LookupError):
    """No scraper is registered under the requested name."""


class ScraperRegistry:
    """Name -> scraper class table with an instantiation factory."""

    def __init__(self):
        self._scrapers: dict[str, type[BaseScraper]] = {}

    def register(self, name: str, scraper_cls: type[BaseScraper]) -> None:
        if not (
            inspect.isclass(scraper_cls)
            and issubclass(scraper_cls, BaseScraper)
            and not inspect.isabstract(scraper_cls)
        ):
            raise TypeError(f"Invalid scraper class for {name}: {scraper_cls!r}")

        self._scrapers[name] = scraper_cls
        logger.debug("Registered scraper: %s", name)

    def unregister(self, name: str) -> None:
        if self._scrapers.pop(name, None) is not None:
            logger.debug("Unregistered scraper: %s", name)

    def has_scraper(self, name: str) -> bool:
        return name in self._scrapers

    def get_scraper(self, name: str, config: dict | None = None, **kwargs) -> BaseScraper:
        """Instantiate a registered scraper; kwargs go to its constructor."""
        scraper_cls = self._scrapers.get(name)
        if scraper_cls is None:
            raise ScraperNotFoundError(
                f"Scraper not found: {name}. "
                f"Available scrapers: {', '.join(self.get_available_scrapers())}"
            )
        return scraper_cls(config or {}, **kwargs)

    def get_available_scrapers(self) -> list[str]:
        return list(self._scrapers)

    def get_scrapers_info(self) -> list[dict]:
        info = []
        for name, scraper_cls in self._scrapers.items():
            instance = scraper_cls()
            info.append({
                "id": name,
                "display_name": instance.source,
                "base_url": instance.base_url,
            })
        return info


def default_registry() -> ScraperRegistry:
    """A registry with every built-in scraper registered."""
    registry = ScraperRegistry()
    for name, scraper_cls in DEFAULT_SCRAPERS.items():
        registry.register(name, scraper_cls)
    return registry
