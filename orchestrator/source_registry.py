from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from models.search import SourceId


@dataclass(frozen=True)
class SourceEndpoint:
    source: SourceId
    display_name: str
    search_url: str
    detail_url: str
    target: str
    web_url: str
    cache_ttl_s: float | None = None


@dataclass
class SourceRegistry:
    _endpoints: dict[SourceId, SourceEndpoint]

    @classmethod
    def from_yaml(cls, path: str | None = None) -> "SourceRegistry":
        registry_path = (
            Path(path)
            if path
            else Path(__file__).resolve().parent.parent / "config" / "source_registry.yaml"
        )
        if not registry_path.exists():
            raise ValueError(f"Source registry not found at {registry_path}")

        data = yaml.safe_load(registry_path.read_text(encoding="utf-8"))
        if not data or "sources" not in data:
            raise ValueError("Invalid source registry: missing sources")

        endpoints: dict[SourceId, SourceEndpoint] = {}
        for name, sdata in data["sources"].items():
            try:
                source = SourceId(name)
            except ValueError as e:
                raise ValueError(f"Unknown source in registry: {name}") from e

            required = ["display_name", "search_url", "detail_url", "target"]
            if any(key not in sdata for key in required):
                raise ValueError(f"Missing required fields for source {name}")

            ttl = sdata.get("cache_ttl_s")
            endpoints[source] = SourceEndpoint(
                source=source,
                display_name=str(sdata["display_name"]),
                search_url=str(sdata["search_url"]),
                detail_url=str(sdata["detail_url"]),
                target=str(sdata["target"]),
                web_url=str(sdata.get("web_url", "")),
                cache_ttl_s=float(ttl) if ttl is not None else None,
            )

        missing = set(SourceId) - set(endpoints)
        if missing:
            names = ", ".join(sorted(s.value for s in missing))
            raise ValueError(f"Source registry is missing: {names}")

        return cls(_endpoints=endpoints)

    def get(self, source: SourceId) -> SourceEndpoint:
        if not isinstance(source, SourceId):
            raise ValueError(f"Invalid source: {source}")
        return self._endpoints[source]

    def list_sources(self) -> list[SourceEndpoint]:
        return [self._endpoints[s] for s in SourceId]
