"""
Shared Kernel Module
====================

Shared infrastructure and domain elements used across all bounded contexts
(intake, triage, maintenance, organisations).

Architecture Pattern: Modular Monolith
- Each module is a bounded context
- Shared kernel contains only generic infrastructure and value helpers
- Domain models live within each module

DO NOT add ticket or organisation business logic to the shared kernel.
"""

__version__ = "1.0.0"
