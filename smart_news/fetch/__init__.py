"""
Page rendering, URL discovery and article extraction.

This package owns everything that touches the monitored news sites.
"""

from .browser import BrowserSession, RenderedPage
from .discovery import SourceDiscovery, is_article_url
from .extractor import ContentExtractor, extract_text, parse_article_html
from .pool import run_in_groups

__all__ = [
    "BrowserSession",
    "ContentExtractor",
    "RenderedPage",
    "SourceDiscovery",
    "extract_text",
    "is_article_url",
    "parse_article_html",
    "run_in_groups",
]
