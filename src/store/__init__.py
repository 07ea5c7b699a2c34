"""Timeline storage layer.

This module defines the storage contract the timeline relies on.
Local, S3, and in-memory backends implement it.
"""
