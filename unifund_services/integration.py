"""
Collaborator interfaces for external systems (file storage, payments).

The workflow engine never talks to a storage bucket or a card processor
directly.  It depends on the two protocols below; production wires real
adapters, tests and local runs use the in-memory implementations.

Usage:

    from unifund_services.integration import (
        InMemoryDocumentStore,
        ResilientDocumentStore,
    )

    store = ResilientDocumentStore(InMemoryDocumentStore(), policy)
    url = store.upload("verification/<user>/identity_1700000000000.pdf", data)
"""

from __future__ import annotations

import threading
import uuid
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from unifund_kernel.exceptions import ValidationError
from unifund_kernel.logging_config import get_logger
from unifund_services.retry import RetryPolicy, call_with_retry

logger = get_logger("services.integration")


@runtime_checkable
class DocumentStore(Protocol):
    """Binary object storage for verification and campaign documents."""

    def upload(self, path: str, content: bytes) -> str:
        """
        Store ``content`` at ``path`` and return the stored path.

        Repeating an upload with identical content returns the same path;
        different content at an existing path raises ValidationError.
        """
        ...

    def remove(self, path: str) -> None:
        """Delete the object at ``path``.  Missing objects are ignored."""
        ...

    def public_url(self, path: str) -> str:
        ...

    def signed_url(self, path: str, ttl_seconds: int) -> str:
        """A time-limited URL for reviewers."""
        ...


@runtime_checkable
class PaymentGateway(Protocol):
    """Card processor.  Completion arrives via the coordinator callback."""

    def new_reference(self, prefix: str = "UNIFUND") -> str:
        ...


def document_path(
    user_id: UUID,
    document_type: str,
    filename: str,
    now: datetime,
) -> str:
    """``verification/<user>/<type>_<epoch ms>.<ext>``"""
    if "." not in filename:
        raise ValidationError("filename", f"{filename!r} has no extension")
    ext = filename.rsplit(".", 1)[1].lower()
    if not ext:
        raise ValidationError("filename", f"{filename!r} has no extension")
    return f"verification/{user_id}/{document_type}_{int(now.timestamp() * 1000)}.{ext}"


class InMemoryDocumentStore:
    """Thread-safe dict-backed DocumentStore."""

    def __init__(self, base_url: str = "https://storage.local/documents"):
        self.base_url = base_url.rstrip("/")
        self._objects: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def upload(self, path: str, content: bytes) -> str:
        with self._lock:
            existing = self._objects.get(path)
            if existing is not None and existing != content:
                raise ValidationError("path", f"{path} already holds a different object")
            self._objects[path] = bytes(content)
        return path

    def remove(self, path: str) -> None:
        with self._lock:
            self._objects.pop(path, None)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def signed_url(self, path: str, ttl_seconds: int) -> str:
        with self._lock:
            if path not in self._objects:
                raise KeyError(path)
        token = uuid.uuid4().hex
        return f"{self.base_url}/{path}?token={token}&expires_in={ttl_seconds}"

    def read(self, path: str) -> bytes:
        with self._lock:
            return self._objects[path]

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._objects


class InMemoryPaymentGateway:
    """Issues references in the ``PLATFORM_<digits>`` style."""

    def __init__(self) -> None:
        self.issued: list[str] = []

    def new_reference(self, prefix: str = "UNIFUND") -> str:
        reference = f"{prefix}_{uuid.uuid4().int % 10**12:012d}"
        self.issued.append(reference)
        return reference


class ResilientDocumentStore:
    """
    Wraps a DocumentStore with the retry policy and a per-attempt timeout.

    Raises DependencyError once every attempt has failed with a transient
    error.
    """

    def __init__(self, store: DocumentStore, policy: RetryPolicy, sleep=None):
        self._store = store
        self._policy = policy
        self._sleep = sleep

    def _call(self, fn, operation: str):
        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        return call_with_retry(
            fn,
            policy=self._policy,
            dependency=f"document_store.{operation}",
            use_timeout=True,
            **kwargs,
        )

    def upload(self, path: str, content: bytes) -> str:
        stored = self._call(lambda: self._store.upload(path, content), "upload")
        logger.info("document_uploaded", extra={"path": stored, "size": len(content)})
        return stored

    def remove(self, path: str) -> None:
        self._call(lambda: self._store.remove(path), "remove")
        logger.info("document_removed", extra={"path": path})

    def public_url(self, path: str) -> str:
        return self._store.public_url(path)

    def signed_url(self, path: str, ttl_seconds: int) -> str:
        return self._call(lambda: self._store.signed_url(path, ttl_seconds), "signed_url")
