"""
Infrastructure Layer
=====================

Low-level technical concerns shared by every module:
- Logging setup
- Rate limiting
- Media storage
"""
