from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from popup_store.config import settings
from popup_store.llm.client import LLMClient, LLMGenerationParams
from popup_store.observability import start_langfuse_generation
from popup_store.schemas.catalogue import ProductDescriptor, ProductDraftList, SynthesisResult
from popup_store.schemas.images import ImageRef

logger = logging.getLogger(__name__)

FALLBACK_PRODUCT_NAME = "Custom Product"
FALLBACK_PRODUCT_DESCRIPTION = "A unique product tailored to your store concept."
FALLBACK_PRODUCT_PRICE = "$29.99"
FALLBACK_IMAGE_PROMPT = "a unique custom product"

CATALOGUE_SCHEMA_NAME = "ProductCatalogue"
CATALOGUE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "products": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Short, catchy product name."},
                    "description": {"type": "string", "description": "One or two sentence product description."},
                    "estimatedPrice": {"type": "string", "description": "Price with currency symbol, e.g. $49.99."},
                    "imagePrompt": {
                        "type": "string",
                        "description": "Concise visual description of the product for an image generator.",
                    },
                },
                "required": ["name", "description", "estimatedPrice", "imagePrompt"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["products"],
    "additionalProperties": False,
}


def build_catalogue_instruction(user_text: str, *, has_image: bool) -> str:
    lines = [
        "You are a merchandising assistant designing the product line for a viral pop-up store.",
        f'Store request: "{user_text.strip()}"',
        "",
        "Create product entries for this store.",
        "If the request states how many products it wants, return exactly that many.",
        "If it does not state a quantity, return exactly 1 product.",
        "For each product provide a name, a short description, an estimated retail price "
        "with a currency symbol, and an image prompt describing how the product looks.",
    ]
    if has_image:
        lines.append(
            "A reference image is attached. Base the products on what the image shows "
            "and keep its style, colours and materials in the image prompts."
        )
    return "\n".join(lines)


def fallback_catalogue() -> list[ProductDescriptor]:
    return [
        ProductDescriptor(
            id="1",
            name=FALLBACK_PRODUCT_NAME,
            description=FALLBACK_PRODUCT_DESCRIPTION,
            estimatedPrice=FALLBACK_PRODUCT_PRICE,
            imagePrompt=FALLBACK_IMAGE_PROMPT,
        )
    ]


def _to_descriptors(payload: dict[str, Any]) -> list[ProductDescriptor]:
    drafts = ProductDraftList.model_validate(payload)
    return [
        ProductDescriptor(
            id=str(index),
            name=draft.name.strip(),
            description=draft.description.strip(),
            estimatedPrice=draft.estimatedPrice.strip(),
            imagePrompt=draft.imagePrompt.strip(),
        )
        for index, draft in enumerate(drafts.products, start=1)
    ]


class CatalogueSynthesizer:
    def __init__(self, *, llm: Optional[LLMClient] = None, model: Optional[str] = None) -> None:
        self.model = model or settings.CATALOGUE_MODEL
        self.llm = llm or LLMClient(default_model=self.model)

    def synthesize(self, user_text: str, image: Optional[ImageRef] = None) -> SynthesisResult[list[ProductDescriptor]]:
        """One schema-constrained attempt; any failure yields the single-item fallback catalogue."""
        prompt = build_catalogue_instruction(user_text, has_image=image is not None)
        params = LLMGenerationParams(
            model=self.model,
            temperature=settings.CATALOGUE_TEMPERATURE,
            max_tokens=settings.CATALOGUE_MAX_TOKENS,
        )
        try:
            with start_langfuse_generation(
                name="catalogue_synthesis",
                model=self.model,
                input=prompt,
                metadata={"hasImage": image is not None},
            ) as generation:
                payload = self.llm.generate_json(
                    prompt,
                    schema_name=CATALOGUE_SCHEMA_NAME,
                    schema=CATALOGUE_SCHEMA,
                    params=params,
                    image=image,
                )
                if generation is not None:
                    generation.update(output=payload)
            products = _to_descriptors(payload)
        except (ValidationError, ValueError) as exc:
            logger.warning(
                "Catalogue model returned malformed output; using fallback catalogue",
                extra={"model": self.model, "error": str(exc)},
            )
            return SynthesisResult.fallback(fallback_catalogue(), error=str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Catalogue synthesis failed; using fallback catalogue",
                extra={"model": self.model, "error": str(exc)},
            )
            return SynthesisResult.fallback(fallback_catalogue(), error=str(exc))

        logger.info(
            "Catalogue synthesized",
            extra={"model": self.model, "product_count": len(products)},
        )
        return SynthesisResult.ok(products)


def synthesize_catalogue(
    user_text: str,
    image: Optional[ImageRef] = None,
    *,
    synthesizer: Optional[CatalogueSynthesizer] = None,
) -> SynthesisResult[list[ProductDescriptor]]:
    return (synthesizer or CatalogueSynthesizer()).synthesize(user_text, image)
