"""
Domain exceptions raised by the feed engine.

The API layer maps each class to an HTTP status in main.py; the CLI maps
them to exit codes.
"""


class FeedError(Exception):
    """Base class for feed engine errors."""

    status_code = 500


class SelfFollowError(FeedError):
    status_code = 400

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} cannot follow themselves")
        self.user_id = user_id


class UserNotFoundError(FeedError):
    status_code = 404

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class ActivityNotFoundError(FeedError):
    status_code = 404

    def __init__(self, activity_id: str):
        super().__init__(f"Activity {activity_id} not found")
        self.activity_id = activity_id


class GraphMutationError(FeedError):
    """A follow/unfollow transaction could not be applied; nothing was changed."""

    status_code = 500
