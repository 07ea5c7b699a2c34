"""Timeline engine.

This module names, orders, and transitions instants on a table timeline.
It turns lifecycle operations into storage actions for the active layout.
"""
