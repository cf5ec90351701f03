"""
API throttling classes.
"""

from rest_framework.throttling import UserRateThrottle


class ImportTriggerThrottle(UserRateThrottle):
    """
    Throttle for endpoints that enqueue imports or refreshes.

    Rate: 120 requests per hour per user.
    Applied to: sources/{id}/import/, sources/{id}/refresh/, series/{id}/refresh/,
    series/{id}/link-source/
    """

    rate = '120/hour'
    scope = 'import_trigger'


class UrlParseThrottle(UserRateThrottle):
    """
    Throttle for URL parsing endpoints.

    Rate: 300 requests per hour per user.
    Applied to: sources/parse-url/, sources/parse-urls/
    """

    rate = '300/hour'
    scope = 'url_parse'
