from __future__ import annotations

import logging
from typing import Optional, Sequence

from popup_store.config import settings
from popup_store.observability import start_langfuse_span
from popup_store.schemas.catalogue import Catalogue, Product, ProductDescriptor, SynthesisResult
from popup_store.schemas.images import ImageRef, is_data_url, parse_data_url
from popup_store.services.image_providers import ImageProvider, get_image_provider, normalize_image_output
from popup_store.services.uploads import UploadStore

logger = logging.getLogger(__name__)

PRODUCT_PHOTO_QUALIFIERS = (
    "professional product photography, white background, studio lighting, "
    "high quality, commercial photography"
)


def build_product_image_prompt(product: ProductDescriptor) -> str:
    subject = product.imagePrompt.strip() or product.name.strip()
    return f"{subject}, {PRODUCT_PHOTO_QUALIFIERS}"


class ProductImageSynthesizer:
    def __init__(
        self,
        *,
        provider: Optional[ImageProvider] = None,
        placeholder_url: Optional[str] = None,
        upload_store: Optional[UploadStore] = None,
    ) -> None:
        self._provider = provider
        self._upload_store = upload_store
        self.placeholder_url = placeholder_url or settings.PRODUCT_IMAGE_PLACEHOLDER_URL

    def _persist_inline(self, url: str) -> str:
        """Store inline image data and return the URL it is served from."""
        if not is_data_url(url):
            return url
        data, mime_type = parse_data_url(url)
        if self._upload_store is None:
            self._upload_store = UploadStore()
        stored = self._upload_store.save(data=data, filename=None, content_type=mime_type)
        return str(stored["url"])

    def _resolve_provider(self) -> ImageProvider:
        if self._provider is None:
            self._provider = get_image_provider()
        return self._provider

    def _generate_one(self, product: ProductDescriptor, reference: Optional[ImageRef]) -> str:
        provider = self._resolve_provider()
        prompt = build_product_image_prompt(product)
        with start_langfuse_span(
            name="product_image",
            input=prompt,
            metadata={"provider": provider.name, "productId": product.id, "hasReference": reference is not None},
        ) as span:
            output = provider.generate(prompt, reference=reference)
            url = self._persist_inline(normalize_image_output(output))
            if span is not None:
                span.update(output={"imageUrl": url[:200]})
        return url

    def synthesize(
        self,
        products: Sequence[ProductDescriptor],
        reference: Optional[ImageRef] = None,
    ) -> SynthesisResult[Catalogue]:
        """
        Attach an image to every product, one provider call at a time.

        A failed call substitutes the placeholder for that product only and the batch
        continues. Output order follows input order; ids are re-assigned by position.
        """
        annotated: list[Product] = []
        errors: list[str] = []
        for position, product in enumerate(products, start=1):
            try:
                image_url = self._generate_one(product, reference)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Product image generation failed; using placeholder",
                    extra={"product_id": product.id, "product_name": product.name, "error": str(exc)},
                )
                errors.append(f"{product.name}: {exc}")
                image_url = self.placeholder_url
            annotated.append(
                Product(
                    id=str(position),
                    name=product.name,
                    description=product.description,
                    estimatedPrice=product.estimatedPrice,
                    imagePrompt=product.imagePrompt,
                    imageUrl=image_url,
                )
            )

        catalogue = Catalogue(products=annotated)
        logger.info(
            "Product images synthesized",
            extra={"product_count": len(annotated), "failed_count": len(errors)},
        )
        if errors:
            return SynthesisResult.fallback(catalogue, error="; ".join(errors))
        return SynthesisResult.ok(catalogue)


def synthesize_product_images(
    products: Sequence[ProductDescriptor],
    reference: Optional[ImageRef] = None,
    *,
    synthesizer: Optional[ProductImageSynthesizer] = None,
) -> SynthesisResult[Catalogue]:
    return (synthesizer or ProductImageSynthesizer()).synthesize(products, reference)
