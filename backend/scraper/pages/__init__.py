"""Listings page and detail page extractors."""

from .listing import ListingPageExtractor, extract_listings
from .detail import DetailPageExtractor, extract_detail

__all__ = ['ListingPageExtractor', 'extract_listings', 'DetailPageExtractor', 'extract_detail']
