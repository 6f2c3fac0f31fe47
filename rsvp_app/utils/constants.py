class ResponseMessages:
    """Standard API response messages"""

    SUCCESS = "Success"
    RESPONSE_RECORDED = "Response recorded successfully"
    RESPONSE_UPDATED = "Response updated successfully"


class AppConstants:
    # Response limits
    MIN_GUEST_COUNT = 1
    MAX_GUEST_COUNT = 10
    MAX_COMMENT_LENGTH = 500
    MAX_GUEST_NAME_LENGTH = 100

    # Host notifications
    NOTIFICATION_DEBOUNCE_SECONDS = 3.0
    HOST_NOTIFICATION_RATE_LIMIT_SECONDS = 30.0

    # Housekeeping
    NOTIFICATION_PRUNE_INTERVAL_SECONDS = 60

    # Actor key prefixes
    USER_ACTOR_PREFIX = "user"
    GUEST_ACTOR_PREFIX = "guest"
