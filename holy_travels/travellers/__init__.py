"""
Traveller profiles: one per user, tracking the current trip, travel history,
loyalty points and the membership tier derived from completed trips.
"""

from .service import TravellerService, membership_tier, loyalty_points_for

__all__ = ["TravellerService", "membership_tier", "loyalty_points_for"]
