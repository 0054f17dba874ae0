from models.devotional import ContentItem, DownloadedCopy, Favorite, parse_date

__all__ = ['ContentItem', 'DownloadedCopy', 'Favorite', 'parse_date']
