"""
Shared API Layer
================

Middleware, exception handlers, auth dependencies and schema base classes
shared by every module's controllers.
"""
