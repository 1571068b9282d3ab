"""Scraper package - web fetch, content extraction and link extraction."""

from mailsift.scraper.extractor import extract_content
from mailsift.scraper.fetcher import fetch_url
from mailsift.scraper.links import extract_links
from mailsift.scraper.models import CleanPage, RawPage

__all__ = ["fetch_url", "extract_content", "extract_links", "RawPage", "CleanPage"]
