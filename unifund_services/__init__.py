"""
unifund_services -- the workflow engine's outer layer.

Holds the WorkflowCoordinator (the single entry point for workflow
actions) and what it needs around the kernel: the authorization gate,
per-entity locks, retry policy and collaborator interfaces.
"""

from unifund_services.authorization import Actor, AuthorizationGate
from unifund_services.integration import (
    DocumentStore,
    InMemoryDocumentStore,
    InMemoryPaymentGateway,
    PaymentGateway,
    ResilientDocumentStore,
)
from unifund_services.locks import EntityLockRegistry
from unifund_services.retry import RetryPolicy, call_with_retry
from unifund_services.workflow_coordinator import (
    CascadeResult,
    CascadeStatus,
    WorkflowCoordinator,
)

__all__ = [
    "Actor",
    "AuthorizationGate",
    "CascadeResult",
    "CascadeStatus",
    "DocumentStore",
    "EntityLockRegistry",
    "InMemoryDocumentStore",
    "InMemoryPaymentGateway",
    "PaymentGateway",
    "ResilientDocumentStore",
    "RetryPolicy",
    "WorkflowCoordinator",
    "call_with_retry",
]
