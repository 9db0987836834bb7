"""IRSA orchestration: convergence engine, teardown and cluster resolution."""

from .resolvers import CAPAResolver, ClusterResolver, EKSResolver, LegacyResolver
from .service import IRSAService
from .teardown import TEARDOWN_ORDER, TeardownStep, plan_teardown, run_teardown

__all__ = [
    "CAPAResolver",
    "ClusterResolver",
    "EKSResolver",
    "IRSAService",
    "LegacyResolver",
    "TEARDOWN_ORDER",
    "TeardownStep",
    "plan_teardown",
    "run_teardown",
]
