"""Watcher definitions.

Watchers are loaded from JSON and are read-only for the rest of the
pipeline. Field aliases follow the camelCase keys of the configuration file
(``priceDropThreshold``, ``includeKeywords``...), snake_case names are
accepted as well.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from peddler.errors import ConfigurationError


class Marketplace(str, Enum):
    """Supported marketplace types."""

    FACEBOOK = "facebook"
    CRAIGSLIST = "craigslist"
    EBAY = "ebay"


class ChannelConfig(BaseModel):
    """One notification channel on a watcher.

    Only ``enabled`` is interpreted here. Every other key (webhook, botToken,
    chatId...) is passed through to the channel's sender as a parameter.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    enabled: bool = False

    @property
    def params(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class Watcher(BaseModel):
    """A named marketplace search with its own filters and channels."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(min_length=1)
    name: str = ""
    enabled: bool = True
    marketplace: Marketplace = Marketplace.FACEBOOK

    # Search parameters
    query: str = ""
    location: str = ""
    radius: int = Field(default=0, ge=0)
    price_min: Optional[Decimal] = Field(default=None, alias="priceMin", ge=0)
    price_max: Optional[Decimal] = Field(default=None, alias="priceMax", ge=0)
    include_keywords: list[str] = Field(default_factory=list, alias="includeKeywords")
    exclude_keywords: list[str] = Field(default_factory=list, alias="excludeKeywords")
    scroll_depth: int = Field(default=3, alias="scrollDepth", ge=0)

    # Fraction of the previous price, 0.1 = 10%
    price_drop_threshold: Decimal = Field(
        default=Decimal("0.1"), alias="priceDropThreshold", ge=0, lt=1
    )

    notifications: dict[str, ChannelConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_price_bounds(self) -> "Watcher":
        if (
            self.price_min is not None
            and self.price_max is not None
            and self.price_min > self.price_max
        ):
            raise ValueError(f"priceMin {self.price_min} is greater than priceMax {self.price_max}")
        return self

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def enabled_channels(self) -> dict[str, ChannelConfig]:
        """Return the channels that are switched on, keyed by channel name."""
        return {name: cfg for name, cfg in self.notifications.items() if cfg.enabled}


class AppConfig(BaseModel):
    """Top-level configuration document."""

    watchers: list[Watcher] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_scrapers_key(cls, data: Any) -> Any:
        # Older config files list watchers under "scrapers"
        if isinstance(data, dict) and "watchers" not in data and "scrapers" in data:
            data = {**data, "watchers": data["scrapers"]}
        return data

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "AppConfig":
        ensure_unique_ids(self.watchers)
        return self

    @property
    def enabled_watchers(self) -> list[Watcher]:
        return [w for w in self.watchers if w.enabled]


def ensure_unique_ids(watchers: list[Watcher]) -> None:
    """Raise ValueError naming the first duplicated watcher id."""
    seen: set[str] = set()
    for watcher in watchers:
        if watcher.id in seen:
            raise ValueError(f"Duplicate watcher id: {watcher.id}")
        seen.add(watcher.id)


def parse_config(data: Any) -> AppConfig:
    """
    Validate a raw configuration document.

    Args:
        data: Decoded JSON document

    Returns:
        AppConfig

    Raises:
        ConfigurationError: If the document is not a valid configuration
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a JSON object")
    if "watchers" not in data and "scrapers" not in data:
        raise ConfigurationError("Configuration must contain a 'watchers' list")

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid watcher configuration: {e}") from e
