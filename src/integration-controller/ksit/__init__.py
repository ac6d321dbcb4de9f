"""KSIT integration controller.

Keeps third-party tool integrations (Argo CD, Flux, Prometheus, Istio)
converged on a fleet of registered Kubernetes clusters.
"""

__version__ = "0.1.0"
