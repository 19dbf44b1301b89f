# btu_api/__init__.py
"""
Burial society backend: news feed with image attachments.
"""
