"""
Exception hierarchy shared by the bot services.
"""


class BotError(Exception):
    """Base class for failures the webhook layer knows how to report."""
    pass
