# =============================================================================
# compliance_core/__init__.py
# Compliance Workflow State Engine
# =============================================================================
"""
Local persistence, backup/recovery and remote sync for the sterilization
compliance workflow.

Usage:
------
from compliance_core.service import create_default_service

service = create_default_service()
state = service.load_state() or {}
service.start_auto_save(lambda: service.save_state(state))
await service.sync(state)
"""

__version__ = "1.0.0"
