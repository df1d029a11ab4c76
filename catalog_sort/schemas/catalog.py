"""Catalog read payload (Shopify Admin GraphQL product nodes)."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _unwrap_connection(v: Any) -> Any:
    """Accept both a plain list and a GraphQL connection ({nodes} or {edges})."""
    if v is None:
        return []
    if isinstance(v, dict):
        if "nodes" in v:
            return v["nodes"] or []
        if "edges" in v:
            return [edge.get("node") for edge in v["edges"] or [] if edge.get("node")]
    return v


class ProductImage(BaseModel):
    id: str
    src: str | None = None


class ImageRef(BaseModel):
    id: str


class ProductOption(BaseModel):
    id: str | None = None
    name: str
    position: int | None = None
    values: list[str] = Field(default_factory=list)


class ProductVariant(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    inventory_quantity: int | None = Field(default=None, alias="inventoryQuantity")
    image: ImageRef | None = None

    @property
    def image_id(self) -> str | None:
        return self.image.id if self.image else None


class Product(BaseModel):
    """A product with everything the sorter needs to reorder it."""

    id: str
    title: str
    handle: str | None = None
    images: list[ProductImage] = Field(default_factory=list)
    options: list[ProductOption] = Field(default_factory=list)
    variants: list[ProductVariant] = Field(default_factory=list)

    @field_validator("images", "options", "variants", mode="before")
    @classmethod
    def _unwrap(cls, v: Any) -> Any:
        return _unwrap_connection(v)
