from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field

DEFAULT_CATEGORY = "Custom"


class ProductDraft(BaseModel):
    """One product entry as returned by the catalogue model."""

    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    estimatedPrice: str = Field(..., min_length=1)
    imagePrompt: str = Field(..., min_length=1)


class ProductDraftList(BaseModel):
    products: list[ProductDraft] = Field(..., min_length=1)


class ProductDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    estimatedPrice: str
    imagePrompt: str


class Product(ProductDescriptor):
    imageUrl: Optional[str] = None
    category: str = DEFAULT_CATEGORY


class Catalogue(BaseModel):
    products: list[Product] = Field(default_factory=list)

    @computed_field
    @property
    def totalProducts(self) -> int:
        return len(self.products)

    @computed_field
    @property
    def categories(self) -> list[str]:
        return [DEFAULT_CATEGORY] if self.products else []


T = TypeVar("T")


@dataclass(frozen=True)
class SynthesisResult(Generic[T]):
    """A provider-backed value, or the deterministic substitute used when the provider failed."""

    value: T
    status: Literal["ok", "fallback"] = "ok"
    error: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.status == "fallback"

    @classmethod
    def ok(cls, value: T) -> "SynthesisResult[T]":
        return cls(value=value)

    @classmethod
    def fallback(cls, value: T, error: str | None = None) -> "SynthesisResult[T]":
        return cls(value=value, status="fallback", error=error)
