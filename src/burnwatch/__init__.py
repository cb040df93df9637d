"""
burnwatch: SLO error-budget tracking, cost budgets and alert dispatch.

Build one engine per process and pass it to whatever records metrics::

    engine = create_engine()
    await engine.start()
    engine.record_metric("api", "availability", 1)
"""

from burnwatch.engine import MonitoringEngine, create_engine

__version__ = "0.1.0"

__all__ = ["MonitoringEngine", "create_engine", "__version__"]
