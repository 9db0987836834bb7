"""IRSA Operator - AWS OIDC trust infrastructure for Kubernetes clusters."""

__version__ = "0.1.0"
