"""
SocialPulse Analytics Back End

Serves social-media performance metrics (views, posts, engagement)
per client and platform:
1. Reads precomputed aggregates refreshed on a schedule
2. Falls back to on-demand aggregation over raw post snapshots
3. Caches results in Redis with per-aggregate TTLs
4. Refreshes and invalidates precomputed data out of band
"""

__version__ = "0.1.0"
