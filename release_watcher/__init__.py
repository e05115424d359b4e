"""
Release Watcher - Announce new RouterOS and WinBox releases to a webhook.

A Python application that polls vendor release feeds and download pages
and posts Discord-style notifications for every new release it finds.
"""

__version__ = "1.0.0"
