"""
Configuration management using YAML files and dataclasses.

This module defines all configuration dataclasses and provides loading
from YAML files with defaults. Configuration sections:
- ProviderConfig: Generative model provider settings
- BrowserConfig: Headless browser rendering settings
- DiscoveryConfig: Listing page crawling settings
- ExtractionConfig: Per-article field extraction settings
- EnrichmentConfig: Batched rewriting and acceptance thresholds
- DedupConfig: Pre-enrichment duplicate filtering
- StorageConfig: In-memory store retention and maintenance thresholds
- SchedulerConfig: Daily trigger settings
- TriggerConfig: Operator trigger endpoint settings
- LoggingConfig: Logging behavior
- LangfuseConfig: Langfuse tracing settings
- SiteConfig: One monitored news source
- AppConfig: Root configuration container
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
import os
from typing import Any

import yaml


@dataclass
class ProviderConfig:
    """Configuration for the generative model provider.

    Attributes:
        name: Provider name ("gemini" currently supported)
        model: Model identifier recorded on every enriched document
        api_key_env: Environment variable name containing the API key
        base_url: Base URL for the provider API
        api_key: Optional inline API key (overrides env var)
        trust_env: Whether to respect system proxy settings for API requests
        timeout_seconds: Request timeout for a single generation call
        temperature: Sampling temperature
        max_output_tokens: Output token limit per call
    """

    name: str = "gemini"
    model: str = "gemini-2.0-flash"
    api_key_env: str = "GEMINI_API_KEY"
    base_url: str = "https://generativelanguage.googleapis.com"
    api_key: str | None = None
    trust_env: bool = True
    timeout_seconds: float = 120.0
    temperature: float = 0.7
    max_output_tokens: int = 16384


@dataclass
class BrowserConfig:
    """Configuration for the shared headless browser (Crawl4AI/Playwright).

    Attributes:
        headless: Run the browser without a window
        timeout_seconds: Page navigation timeout
        settle_seconds: Delay after load so dynamic content can render
        user_agent: Browser User-Agent header string
        magic: Enable Crawl4AI anti-detection "magic" mode
        simulate_user: Simulate user behavior for anti-bot
    """

    headless: bool = True
    timeout_seconds: float = 30.0
    settle_seconds: float = 2.0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )
    magic: bool = True
    simulate_user: bool = True


@dataclass
class DiscoveryConfig:
    """Configuration for listing page discovery.

    Attributes:
        max_documents_per_run: Cap on URLs handed to extraction per run
        page_pause_seconds: Pause between listing pages of one site
        site_pause_seconds: Pause between sites
    """

    max_documents_per_run: int = 20
    page_pause_seconds: float = 1.0
    site_pause_seconds: float = 2.0


@dataclass
class ExtractionConfig:
    """Configuration for article field extraction.

    Attributes:
        group_size: Number of pages rendered concurrently
        group_pause_seconds: Cooldown between groups
        max_images: Maximum image URLs kept per document
        max_title_chars: Title length cap
        max_body_chars: Body length cap
        max_author_chars: Author length cap
        min_title_chars: Minimum title length for a valid document
        min_body_chars: Minimum body length for a valid document
        min_body_words: Minimum body word count for a valid document
        primary: Generic body extraction method ("trafilatura", "readability", or "bs4")
        fallback: Generic extraction methods tried after the primary one
    """

    group_size: int = 3
    group_pause_seconds: float = 3.0
    max_images: int = 5
    max_title_chars: int = 200
    max_body_chars: int = 5000
    max_author_chars: int = 100
    min_title_chars: int = 10
    min_body_chars: int = 100
    min_body_words: int = 50
    primary: str = "trafilatura"
    fallback: list[str] = field(default_factory=lambda: ["readability", "bs4"])


@dataclass
class EnrichmentConfig:
    """Configuration for batched rewriting and acceptance validation.

    Attributes:
        batch_size: Documents per batch prompt
        batch_pause_seconds: Pause between batches
        max_attempts: Attempts per model call when rate limited
        max_input_chars: Body characters sent per document
        min_title_chars: Minimum accepted title length
        min_body_chars: Minimum accepted body length
        min_body_words: Minimum accepted body word count
        min_summary_chars: Minimum accepted summary length
        min_tags: Minimum number of tags
        fallback_confidence: Confidence score assigned by the fallback enrichment
    """

    batch_size: int = 3
    batch_pause_seconds: float = 2.0
    max_attempts: int = 3
    max_input_chars: int = 3000
    min_title_chars: int = 10
    min_body_chars: int = 500
    min_body_words: int = 200
    min_summary_chars: int = 50
    min_tags: int = 3
    fallback_confidence: float = 0.7


@dataclass
class DedupConfig:
    """Configuration for pre-enrichment deduplication of raw documents.

    Attributes:
        enabled: Whether to drop duplicate raw documents before enrichment
        title_similarity_threshold: Fuzzy match threshold (0-100) for title similarity
    """

    enabled: bool = True
    title_similarity_threshold: int = 92


@dataclass
class StorageConfig:
    """Configuration for the in-memory document store.

    Attributes:
        retention_hours: Maximum age of a document, by discovery time
        duplicate_threshold: Title word-overlap ratio treated as a duplicate
        max_documents_per_category: Used to derive the total-count threshold
        maintenance_interval_hours: Maintenance is overdue after this long
        memory_warning_kb: Estimated footprint that raises a warning
        memory_critical_kb: Estimated footprint that is critical
    """

    retention_hours: float = 24.0
    duplicate_threshold: float = 0.8
    max_documents_per_category: int = 50
    maintenance_interval_hours: float = 6.0
    memory_warning_kb: float = 10000.0
    memory_critical_kb: float = 15000.0


@dataclass
class SchedulerConfig:
    """Configuration for the daily trigger.

    Attributes:
        time: Daily fire time, "HH:MM"
        timezone: IANA timezone of the fire time
        pause_on_high_error_rate: Skip a firing while the error rate is high
        error_rate_threshold: Errors per hour considered high
    """

    time: str = "06:00"
    timezone: str = "UTC"
    pause_on_high_error_rate: bool = True
    error_rate_threshold: int = 10


@dataclass
class TriggerConfig:
    """Configuration for the operator trigger endpoint.

    Attributes:
        api_key: Optional inline API key (overrides env var)
        api_key_env: Environment variable name containing the API key
        test_max_documents: Document cap for "test" mode runs
    """

    api_key: str | None = None
    api_key_env: str = "SCRAPING_API_KEY"
    test_max_documents: int = 5


@dataclass
class LoggingConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
        console: Whether to log to console
        file: Whether to log to file
        format: Log file format ("jsonl" or "plain")
        directory: Directory for log files
        filename: Name of the main log file
        llm_log_enabled: Whether to enable separate LLM interaction logging
        llm_log_detail: LLM log detail level ("response_only", "prompt_response")
        llm_log_redaction: Redaction mode for LLM logs ("none", "redact_content", "redact_urls_authors")
        llm_log_file: Name of the LLM log file
    """

    level: str = "INFO"
    console: bool = True
    file: bool = False
    format: str = "jsonl"
    directory: str = "logs"
    filename: str = "pipeline.jsonl"
    llm_log_enabled: bool = False
    llm_log_detail: str = "response_only"
    llm_log_redaction: str = "redact_urls_authors"
    llm_log_file: str = "llm.jsonl"


@dataclass
class LangfuseConfig:
    """Configuration for Langfuse tracing.

    Attributes:
        enabled: Whether to enable Langfuse tracing
        public_key: Langfuse public key (optional)
        secret_key: Langfuse secret key (optional)
        host: Langfuse host URL (optional)
        environment: Langfuse environment label (optional)
        release: Langfuse release identifier (optional)
        redaction: Redaction mode for prompt/response payloads
        max_text_chars: Maximum characters for prompt/response payloads
    """

    enabled: bool = False
    public_key: str | None = None
    secret_key: str | None = None
    host: str | None = None
    environment: str | None = None
    release: str | None = None
    redaction: str = "redact_urls_authors"
    max_text_chars: int = 20000


@dataclass(frozen=True)
class FieldSelectors:
    """CSS selectors for one site. Comma-separated alternatives are allowed."""

    article_links: str
    title: str = "h1"
    content: str = "article p"
    author: str = ".author, .byline"
    publish_date: str = "time, .date"
    images: str = "article img"


@dataclass(frozen=True)
class SiteConfig:
    """A monitored news source.

    Attributes:
        name: Human-readable site name, used by named-site runs
        base_url: Scheme and host of the site
        listing_paths: Paths of listing pages crawled for article links
        selectors: Field selectors used by discovery and extraction
    """

    name: str
    base_url: str
    listing_paths: tuple[str, ...]
    selectors: FieldSelectors


DEFAULT_SITES: tuple[SiteConfig, ...] = (
    SiteConfig(
        name="Graphic.com.gh",
        base_url="https://www.graphic.com.gh",
        listing_paths=("/politics", "/news/politics", "/category/politics", "/news"),
        selectors=FieldSelectors(
            article_links=(
                'a[href*="/news/"], a[href*="/politics/"], a[href*="/article/"], '
                'a[href*="graphic.com.gh"]'
            ),
            title="h1, .entry-title, .post-title, .article-title, .headline",
            content=".article-details p, .raxo-content p, .com-content p, .view-article p, p",
            author=(
                ".author, .byline, .post-author, .entry-author, .writer-name, "
                ".article-info .author"
            ),
            publish_date=(
                ".date, .post-date, .entry-date, .publish-date, time, .published, "
                ".article-info .date"
            ),
            images=(
                'img[src*=".jpg"], img[src*=".png"], img[src*=".jpeg"], '
                ".article-full-image img, .article-details img, .raxo-content img"
            ),
        ),
    ),
    SiteConfig(
        name="GhanaWeb",
        base_url="https://www.ghanaweb.com",
        listing_paths=("/GhanaHomePage/politics/", "/GhanaHomePage/NewsArchive/politik.php"),
        selectors=FieldSelectors(
            article_links='a[href*="/NewsArchive/artikel.php"]',
            title="h1, .article-title, .news-title",
            content=".article-content, .news-content, .story-body, p",
            author=".author, .byline, .writer",
            publish_date=".date, .publish-date, .timestamp",
            images='img[src*=".jpg"], img[src*=".png"], img[src*=".jpeg"]',
        ),
    ),
    SiteConfig(
        name="MyJoyOnline",
        base_url="https://www.myjoyonline.com",
        listing_paths=("/politics/", "/news/politics/"),
        selectors=FieldSelectors(
            article_links='a[href*="/politics/"], a[href*="/news/"]',
            title="h1, .entry-title, .post-title",
            content=".entry-content, .post-content, .article-body",
            author=".author-name, .byline",
            publish_date=".entry-date, .post-date",
            images=".entry-content img, .post-content img",
        ),
    ),
    SiteConfig(
        name="ModernGhana",
        base_url="https://www.modernghana.com",
        listing_paths=("/politics/", "/news/politics/", "/category/politics/", "/news/"),
        selectors=FieldSelectors(
            article_links='a[href*="/news/"], a[href*="/politics/"], a[href*="modernghana.com"]',
            title="h1, .entry-title, .post-title, .article-title, .news-title",
            content=(
                ".entry-content, .post-content, .article-content, .news-content, "
                ".story-body, p"
            ),
            author=".author, .byline, .post-author, .entry-author, .writer-name",
            publish_date=".date, .post-date, .entry-date, .publish-date, time, .published",
            images=(
                'img[src*=".jpg"], img[src*=".png"], img[src*=".jpeg"], '
                ".entry-content img, .post-content img"
            ),
        ),
    ),
    SiteConfig(
        name="CitiNewsroom",
        base_url="https://citinewsroom.com",
        listing_paths=("/news/",),
        selectors=FieldSelectors(
            article_links='a[href*="/2025/"], a[href*="/2024/"], article a, .post a',
            title="h1, .entry-title, .post-title, .article-title, .news-title",
            content=(
                ".entry-content, .post-content, .article-content, .news-content, "
                ".story-body, p"
            ),
            author=".author, .byline, .post-author, .entry-author, .writer-name",
            publish_date=".date, .post-date, .entry-date, .publish-date, time, .published",
            images=(
                'img[src*=".jpg"], img[src*=".png"], img[src*=".jpeg"], '
                ".entry-content img, .post-content img"
            ),
        ),
    ),
)


@dataclass
class AppConfig:
    """Root configuration container aggregating all config sections."""

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    langfuse: LangfuseConfig = field(default_factory=LangfuseConfig)
    sites: tuple[SiteConfig, ...] = DEFAULT_SITES

    def site_by_name(self, name: str) -> SiteConfig | None:
        for site in self.sites:
            if site.name == name:
                return site
        return None


_SECTIONS: dict[str, type] = {
    "provider": ProviderConfig,
    "browser": BrowserConfig,
    "discovery": DiscoveryConfig,
    "extraction": ExtractionConfig,
    "enrichment": EnrichmentConfig,
    "dedup": DedupConfig,
    "storage": StorageConfig,
    "scheduler": SchedulerConfig,
    "trigger": TriggerConfig,
    "logging": LoggingConfig,
    "langfuse": LangfuseConfig,
}


def load_config(path: str | None) -> AppConfig:
    """Load configuration from a YAML file with defaults."""
    if not path:
        return AppConfig()

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    return _merge_config(AppConfig(), raw)


def _merge_config(base: AppConfig, raw: dict[str, Any]) -> AppConfig:
    """Merge raw YAML config into base AppConfig.

    Section mappings are merged key by key; unknown sections and unknown
    keys are ignored. A ``sites`` list replaces the default sites entirely.
    """
    sections: dict[str, Any] = {}
    for name, cls in _SECTIONS.items():
        data = asdict(getattr(base, name))
        value = raw.get(name)
        if isinstance(value, dict):
            known = {f.name for f in fields(cls)}
            data.update({k: v for k, v in value.items() if k in known})
        sections[name] = cls(**data)

    sites = base.sites
    if isinstance(raw.get("sites"), list):
        sites = tuple(_site_from_dict(item) for item in raw["sites"])

    return AppConfig(sites=sites, **sections)


def _site_from_dict(data: dict[str, Any]) -> SiteConfig:
    """Build a SiteConfig from a YAML mapping.

    Raises:
        ValueError: If name, base_url or selectors.article_links is missing
    """
    selectors = data.get("selectors") or {}
    if not data.get("name") or not data.get("base_url"):
        raise ValueError("Site config requires 'name' and 'base_url'")
    if not selectors.get("article_links"):
        raise ValueError(f"Site {data['name']!r} requires selectors.article_links")
    known = {f.name for f in fields(FieldSelectors)}
    return SiteConfig(
        name=str(data["name"]),
        base_url=str(data["base_url"]).rstrip("/"),
        listing_paths=tuple(str(p) for p in data.get("listing_paths") or ()),
        selectors=FieldSelectors(**{k: str(v) for k, v in selectors.items() if k in known}),
    )


def get_api_key(cfg: ProviderConfig) -> str | None:
    """Get API key from inline config or environment variable."""
    if cfg.api_key:
        return cfg.api_key
    return os.getenv(cfg.api_key_env)


def get_trigger_key(cfg: TriggerConfig) -> str | None:
    """Get the trigger endpoint key from inline config or environment variable."""
    if cfg.api_key:
        return cfg.api_key
    return os.getenv(cfg.api_key_env)
