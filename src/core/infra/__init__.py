"""
Infrastructure orchestration for hostbus.

Module Contents
---------------
- ApplicationContext: owns the process-wide EventBus, StagedLoader and
  LifecycleController and tears them down in reverse order.
"""

from src.core.infra.application_context import ApplicationContext

__all__ = ["ApplicationContext"]
