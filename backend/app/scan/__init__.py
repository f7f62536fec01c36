"""Scan relay module.

A phone camera uploads captured pages into a short-lived room; the desktop
session polls the room's manifest and pulls (optionally consuming) each image.

Rooms and images live only in process memory:
- images expire 5 minutes after upload
- rooms expire 30 minutes after their last access

Nothing is written to disk.
"""
