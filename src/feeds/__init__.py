from src.feeds.group_feed import FeedItem, GroupFeedService, GroupFeedStats, MovieWatchStats

__all__ = ["FeedItem", "GroupFeedService", "GroupFeedStats", "MovieWatchStats"]
