# btu_api/services/__init__.py
"""
Business logic services.
"""

from btu_api.services.news_service import ImageUpload, NewsPage, NewsService

__all__ = ["ImageUpload", "NewsPage", "NewsService"]
