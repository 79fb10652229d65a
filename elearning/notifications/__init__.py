from .dispatcher import Notification, enqueue, enqueue_on_commit  # noqa: F401
