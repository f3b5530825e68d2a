"""Query, paging, caching and analytics services."""
