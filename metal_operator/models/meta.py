"""Object metadata and references shared by every stored resource."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar

from pydantic import BaseModel, Field


class OwnerReference(BaseModel):
    kind: str
    name: str
    uid: str
    controller: bool = False


class ObjectReference(BaseModel):
    kind: str = ""
    namespace: str = ""
    name: str
    uid: str = ""
    resourceVersion: int | None = None


class LocalObjectReference(BaseModel):
    name: str


class SecretReference(BaseModel):
    name: str
    namespace: str = ""


class ObjectMeta(BaseModel):
    name: str
    namespace: str = ""
    uid: str = ""
    resourceVersion: int = 0
    generation: int = 0
    creationTimestamp: datetime | None = None
    deletionTimestamp: datetime | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    finalizers: list[str] = Field(default_factory=list)
    ownerReferences: list[OwnerReference] = Field(default_factory=list)
    # field path -> field manager, maintained by declarative apply
    managedFields: dict[str, str] = Field(default_factory=dict)


class Resource(BaseModel):
    """Base class for everything kept in the object store."""

    kind: ClassVar[str] = ""

    metadata: ObjectMeta

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> str:
        """``namespace/name`` (or just ``name`` for cluster-scoped objects)."""
        return object_key(self.metadata.namespace, self.metadata.name)

    @property
    def being_deleted(self) -> bool:
        return self.metadata.deletionTimestamp is not None

    @classmethod
    def content_fields(cls) -> list[str]:
        """Top-level fields written by patch/apply (everything but metadata and status)."""
        return [f for f in cls.model_fields if f not in ("metadata", "status")]

    def owner_reference(self, controller: bool = True) -> OwnerReference:
        return OwnerReference(
            kind=self.kind,
            name=self.metadata.name,
            uid=self.metadata.uid,
            controller=controller,
        )

    def object_reference(self) -> ObjectReference:
        return ObjectReference(
            kind=self.kind,
            namespace=self.metadata.namespace,
            name=self.metadata.name,
            uid=self.metadata.uid,
            resourceVersion=self.metadata.resourceVersion,
        )

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.metadata.finalizers


def object_key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}" if namespace else name


def split_key(key: str) -> tuple[str, str]:
    """Inverse of :func:`object_key`."""
    namespace, sep, name = key.rpartition("/")
    if not sep:
        return "", key
    return namespace, name
