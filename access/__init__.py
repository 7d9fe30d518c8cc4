"""
Consent Guard Access Layer
==========================
The consent-gated decision pipeline: policy tables, authorization
checker, restriction evaluator, decision cache and the engine that
composes them.
"""

from .collaborators import UserDirectory, ConsentVerifier, AuditSink, EncryptionProvider
from .policy_tables import PolicyTables, PolicyRequirement
from .authorization import AuthorizationChecker
from .restrictions import RestrictionEvaluator, RestrictionResult
from .decision_cache import DecisionCache, RequestFingerprint, CacheEntry, CacheStats
from .engine import AccessDecisionEngine, build_audit_record, create_engine

__all__ = [
    # Collaborator contracts
    "UserDirectory",
    "ConsentVerifier",
    "AuditSink",
    "EncryptionProvider",
    # Policy
    "PolicyTables",
    "PolicyRequirement",
    # Pipeline stages
    "AuthorizationChecker",
    "RestrictionEvaluator",
    "RestrictionResult",
    # Caching
    "DecisionCache",
    "RequestFingerprint",
    "CacheEntry",
    "CacheStats",
    # Engine
    "AccessDecisionEngine",
    "build_audit_record",
    "create_engine",
]
