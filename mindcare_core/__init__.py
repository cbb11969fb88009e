# =============================================================================
# mindcare_core/__init__.py
# MindCare Sync Core
# =============================================================================
"""
Storage and sync core for the MindCare practice-management app.

Subpackages:
- offline: credential gate, Drive store, SQLite fallback, cache, sync queue, facade
- services: ServiceResult and reporting services
- errors: exception hierarchy and handlers
- logging: logging setup
"""

__version__ = "1.0.0"
