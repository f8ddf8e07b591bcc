"""Project and hosting data models"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

# Wire (camelCase) names for ProjectRecord fields
_WIRE_FIELDS = {
    "id": "id",
    "name": "name",
    "source_image": "sourceImage",
    "rendered_image": "renderedImage",
    "owner_id": "ownerId",
    "is_public": "isPublic",
    "updated_at": "updatedAt",
    "timestamp": "timestamp",
    "source_path": "sourcePath",
    "rendered_path": "renderedPath",
}

# Client-local hints that carry no meaning for the store
LOCAL_PATH_HINTS = ("source_path", "rendered_path")


@dataclass
class ProjectRecord:
    """The unit of persistence: a source image, an optional render and ownership flags"""
    id: str
    source_image: str
    name: str = ""
    rendered_image: Optional[str] = None
    owner_id: Optional[str] = None
    is_public: Optional[bool] = None
    updated_at: Optional[str] = None  # Set by the store on every save
    timestamp: Optional[int] = None  # Client-side last edit, epoch ms
    source_path: Optional[str] = None
    rendered_path: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)  # Unknown fields, round-tripped

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectRecord":
        wire_to_attr = {wire: attr for attr, wire in _WIRE_FIELDS.items()}
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            attr = wire_to_attr.get(key)
            if attr:
                kwargs[attr] = value
            else:
                extra[key] = value
        kwargs.setdefault("id", "")
        kwargs.setdefault("source_image", "")
        if kwargs.get("id") is not None:
            kwargs["id"] = str(kwargs["id"])
        if kwargs.get("name") is None:
            kwargs["name"] = ""
        return cls(extra=extra, **kwargs)

    def to_dict(self, include_local_hints: bool = True) -> Dict[str, Any]:
        """Serialize to the wire shape, dropping absent (None) fields."""
        data = dict(self.extra)
        for attr, wire in _WIRE_FIELDS.items():
            if not include_local_hints and attr in LOCAL_PATH_HINTS:
                continue
            value = getattr(self, attr)
            if value is not None:
                data[wire] = value
        return data


@dataclass(frozen=True)
class HostingNamespace:
    """Per-owner publishing root"""
    handle: str

    def to_dict(self) -> Dict[str, str]:
        return {"handle": self.handle}


@dataclass(frozen=True)
class HostedAsset:
    """A materialized image at its durable public URL"""
    url: str
    path: Optional[str] = None  # None when the reference was already durable
    mime_type: Optional[str] = None
    bytes_size: int = 0
    width: Optional[int] = None
    height: Optional[int] = None
