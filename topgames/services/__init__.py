"""Services package: expose all concrete services from one import."""
from .rating_service import RatingAggregator, average_rating
from .analytics_service import AnalyticsUpserter, AnalyticsService, should_track
from .review_service import ReviewService
from .catalog_service import CatalogService
from .user_service import UserService
from .favorites_service import FavoritesService

__all__ = [
    'RatingAggregator',
    'average_rating',
    'AnalyticsUpserter',
    'AnalyticsService',
    'should_track',
    'ReviewService',
    'CatalogService',
    'UserService',
    'FavoritesService',
]
