"""
Meeting bot lifecycle service.

Creates Recall.ai recording bots for video calls, follows their join
progress, and reconciles bot status into the owning session record.
"""

__version__ = "0.1.0"
