"""
Observability Package — Tracing

Provides:
  TracingConfig   — optional OpenTelemetry exporter initialisation
  traced          — decorator for instrumenting async functions

Usage::

    # At app startup (in main.py create_app):
    from skyvault.observability.tracing import TracingConfig
    TracingConfig.init(settings)
"""

from skyvault.observability.tracing import TracingConfig, traced

__all__ = ["TracingConfig", "traced"]
