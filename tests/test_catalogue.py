import pytest

from popup_store.llm.client import LLMClientConfigError
from popup_store.schemas.images import ImageRef
from popup_store.services.catalogue import (
    CATALOGUE_SCHEMA_NAME,
    FALLBACK_PRODUCT_DESCRIPTION,
    FALLBACK_PRODUCT_NAME,
    FALLBACK_PRODUCT_PRICE,
    CatalogueSynthesizer,
    build_catalogue_instruction,
    synthesize_catalogue,
)


class FakeLLM:
    def __init__(self, *, payload=None, error: Exception | None = None) -> None:
        self.payload = payload
        self.error = error
        self.calls: list[dict] = []

    def generate_json(self, prompt, *, schema_name, schema, params=None, image=None):
        self.calls.append({"prompt": prompt, "schema_name": schema_name, "params": params, "image": image})
        if self.error is not None:
            raise self.error
        return self.payload


def _assert_fallback(result) -> None:
    assert result.is_fallback
    assert len(result.value) == 1
    product = result.value[0]
    assert product.id == "1"
    assert product.name == FALLBACK_PRODUCT_NAME
    assert product.description == FALLBACK_PRODUCT_DESCRIPTION
    assert product.estimatedPrice == FALLBACK_PRODUCT_PRICE


def test_synthesize_returns_products_with_ordinal_ids():
    llm = FakeLLM(
        payload={
            "products": [
                {"name": " Drop Runner ", "description": "Sneaker", "estimatedPrice": "$120", "imagePrompt": "sneaker"},
                {"name": "Drop Tee", "description": "Tee", "estimatedPrice": "$35", "imagePrompt": "t-shirt"},
            ]
        }
    )

    result = CatalogueSynthesizer(llm=llm, model="gpt-4o-mini").synthesize("a sneaker drop store with 2 products")

    assert result.status == "ok"
    assert [p.id for p in result.value] == ["1", "2"]
    assert result.value[0].name == "Drop Runner"
    assert llm.calls[0]["schema_name"] == CATALOGUE_SCHEMA_NAME
    assert llm.calls[0]["params"].model == "gpt-4o-mini"


def test_synthesize_passes_reference_image_to_llm():
    image = ImageRef(url="https://images.test/ref.png", content_type="image/png")
    llm = FakeLLM(payload={"products": [{"name": "a", "description": "b", "estimatedPrice": "$1", "imagePrompt": "c"}]})

    CatalogueSynthesizer(llm=llm, model="gpt-4o-mini").synthesize("store like this", image)

    assert llm.calls[0]["image"] is image
    assert "reference image" in llm.calls[0]["prompt"]


@pytest.mark.parametrize(
    "error",
    [
        RuntimeError("provider unavailable"),
        LLMClientConfigError("OPENAI_API_KEY not configured"),
        ValueError("Unable to locate a complete JSON object in response text"),
    ],
)
def test_synthesize_falls_back_when_provider_fails(error):
    result = CatalogueSynthesizer(llm=FakeLLM(error=error), model="gpt-4o-mini").synthesize("a candle shop")
    _assert_fallback(result)
    assert result.error


@pytest.mark.parametrize(
    "payload",
    [
        {"products": []},
        {"items": []},
        {"products": [{"name": "missing fields"}]},
        {"products": [{"name": "", "description": "d", "estimatedPrice": "$1", "imagePrompt": "p"}]},
    ],
)
def test_synthesize_falls_back_on_schema_mismatch(payload):
    result = CatalogueSynthesizer(llm=FakeLLM(payload=payload), model="gpt-4o-mini").synthesize("a candle shop")
    _assert_fallback(result)


def test_synthesize_catalogue_uses_given_synthesizer():
    llm = FakeLLM(error=RuntimeError("boom"))
    result = synthesize_catalogue("anything", synthesizer=CatalogueSynthesizer(llm=llm, model="gpt-4o-mini"))
    _assert_fallback(result)
    assert len(llm.calls) == 1


def test_instruction_defaults_to_one_product():
    text = build_catalogue_instruction("a sneaker drop store", has_image=False)
    assert "a sneaker drop store" in text
    assert "exactly 1 product" in text
    assert "reference image" not in text
