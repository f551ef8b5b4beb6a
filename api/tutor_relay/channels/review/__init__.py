"""Teacher review channel: review cards and the edit modal."""

from tutor_relay.channels.review.slack_channel import SlackReviewChannel

__all__ = ["SlackReviewChannel"]
