"""Review/edit buffer package."""

from bookkeeper.review.buffer import ReviewBuffer

__all__ = ["ReviewBuffer"]
