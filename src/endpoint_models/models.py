"""
models.py - Pydantic schemas and runtime dataclasses for endpoint model resolution.

Three layers:
  1. Config schemas  (EndpointConfig, EndpointModelOptions) parsed from the app config
  2. Request-scoped types  (Caller, FetchKey, FetchParams, FetchedModels)
  3. Results  (PlainModelsConfig | DetailedModelsConfig, chosen by Verbosity)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from endpoint_models.config import models_config_cache_key

ModelList = List[str]
ModelsConfig = Dict[str, ModelList]
ModelDetails = Dict[str, Any]


# ══════════════════════════════════════════════════════════════════════════════
# Enumerations
# ══════════════════════════════════════════════════════════════════════════════


class Verbosity(str, Enum):
    PLAIN    = "plain"     # model ids only
    DETAILED = "detailed"  # model ids plus per-model metadata

    @classmethod
    def from_flag(cls, include_details: bool) -> "Verbosity":
        return cls.DETAILED if include_details else cls.PLAIN

    @property
    def include_details(self) -> bool:
        return self is Verbosity.DETAILED

    @property
    def cache_key(self) -> str:
        return models_config_cache_key(self.include_details)


# ══════════════════════════════════════════════════════════════════════════════
# Config schemas
# ══════════════════════════════════════════════════════════════════════════════


class EndpointModelOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    fetch: bool = False
    default: Optional[List[Union[str, Dict[str, Any]]]] = None
    # True -> ?user=<id>; a string names the query parameter instead
    user_id_query: Union[bool, str, None] = Field(None, alias="userIdQuery")

    def default_names(self) -> ModelList:
        """Configured defaults reduced to plain model ids."""
        if not isinstance(self.default, list):
            return []
        names: ModelList = []
        for entry in self.default:
            if isinstance(entry, str):
                names.append(entry)
            elif isinstance(entry, dict) and entry.get("name"):
                names.append(str(entry["name"]))
        return names


class EndpointConfig(BaseModel):
    """A custom endpoint as declared under ``endpoints.custom``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    base_url: str = Field(alias="baseURL")
    api_key: str = Field(alias="apiKey")
    headers: Optional[Dict[str, Any]] = None
    direct_endpoint: bool = Field(False, alias="directEndpoint")
    models: EndpointModelOptions


# ══════════════════════════════════════════════════════════════════════════════
# Request-scoped types
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class Caller:
    """The user a resolution is performed for."""
    id: str
    role: Optional[str] = None


class FetchKey(NamedTuple):
    """Identity of one provider listing call: resolved address + credential."""
    base_url: str
    api_key: str


@dataclass
class FetchParams:
    name: str
    api_key: str
    base_url: str
    caller: Caller
    headers: Optional[Dict[str, Any]] = None
    direct: bool = False
    user_id_query: Union[bool, str, None] = None

    @property
    def user_id(self) -> str:
        return self.caller.id


@dataclass
class FetchedModels:
    """Result of the detailed fetch variant."""
    models: ModelList = field(default_factory=list)
    model_details: Dict[str, ModelDetails] = field(default_factory=dict)


# ══════════════════════════════════════════════════════════════════════════════
# Results
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class PlainModelsConfig:
    models: ModelsConfig = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {name: list(ids) for name, ids in self.models.items()}


@dataclass
class DetailedModelsConfig:
    models: ModelsConfig = field(default_factory=dict)
    model_details: Dict[str, ModelDetails] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "models": {name: list(ids) for name, ids in self.models.items()},
            "modelDetails": dict(self.model_details),
        }


ResolvedModelsConfig = Union[PlainModelsConfig, DetailedModelsConfig]
