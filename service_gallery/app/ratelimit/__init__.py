"""
Rate limiting package for the Gallery service.

Holds the in-process token bucket that paces outgoing requests to the
upstream collection API. One bucket per upstream endpoint is shared by
every key and every retry attempt.
"""

from .token_bucket import TokenBucket

__all__ = ["TokenBucket"]
