from popup_store.schemas.catalogue import Catalogue, Product
from popup_store.services.store_prompts import (
    STORE_LAYOUT_INSTRUCTIONS,
    STORE_SYSTEM_PROMPT,
    ChatState,
    compose_image_regeneration_message,
    compose_store_prompt,
    serialize_catalogue,
)


def _catalogue() -> Catalogue:
    return Catalogue(
        products=[
            Product(
                id="1",
                name="Drop Runner",
                description="Limited sneaker.",
                estimatedPrice="$120",
                imagePrompt="sneaker",
                imageUrl="https://images.test/1.webp",
            ),
            Product(
                id="2",
                name="Drop Tee",
                description="Heavy cotton tee.",
                estimatedPrice=" ",
                imagePrompt="tee",
                category="",
            ),
        ]
    )


def test_serialize_catalogue_emits_one_block_per_product():
    text = serialize_catalogue(_catalogue())

    assert text.startswith("[PRODUCT_CATALOGUE]")
    assert text.endswith("[/PRODUCT_CATALOGUE]")
    assert "[PRODUCT_1]\nNAME: Drop Runner\nDESCRIPTION: Limited sneaker.\nPRICE: $120\nCATEGORY: Custom\nIMAGE_URL: https://images.test/1.webp\n[/PRODUCT_1]" in text
    assert "[PRODUCT_2]" in text and "[/PRODUCT_2]" in text


def test_serialize_catalogue_renders_placeholders_for_missing_values():
    text = serialize_catalogue(_catalogue())
    second = text.split("[PRODUCT_2]")[1]

    assert "IMAGE_URL: No image available" in second
    assert "PRICE: Contact for pricing" in second
    assert "CATEGORY: Custom" in second


def test_serialize_empty_catalogue_keeps_wrapper():
    assert serialize_catalogue(Catalogue()) == "[PRODUCT_CATALOGUE]\n[/PRODUCT_CATALOGUE]"


def test_compose_new_chat_includes_layout_persona_and_request():
    catalogue_text = serialize_catalogue(_catalogue())

    composed = compose_store_prompt("sneaker drop store", catalogue_text, has_chat_id=False)

    assert composed.system == STORE_SYSTEM_PROMPT
    assert STORE_LAYOUT_INSTRUCTIONS in composed.message
    assert '"Buy Now"' in composed.message
    assert catalogue_text in composed.message
    assert "Create a sneaker drop store." in composed.message


def test_compose_continuation_omits_persona_and_layout():
    catalogue_text = serialize_catalogue(_catalogue())

    composed = compose_store_prompt("make the hero darker", catalogue_text, has_chat_id=True)

    assert composed.system is None
    assert STORE_SYSTEM_PROMPT not in composed.message
    assert STORE_LAYOUT_INSTRUCTIONS not in composed.message
    assert catalogue_text in composed.message
    assert "make the hero darker" in composed.message


def test_chat_state_follows_chat_id():
    assert ChatState.for_chat_id(None) is ChatState.NEW
    assert ChatState.for_chat_id("") is ChatState.NEW
    assert ChatState.for_chat_id("chat-1") is ChatState.CONTINUING


def test_image_regeneration_message_targets_one_asset():
    message = compose_image_regeneration_message(
        file_path="public/hero.png",
        prompt="neon skyline",
        size="1024x1024",
        format="png",
    )
    assert message.splitlines() == [
        "Regenerate ONE image asset only.",
        "Target path: public/hero.png",
        "Image requirements: 1024x1024, format: png",
        "Keep the same file name and path.",
        "Do not modify or delete any other files.",
        "Prompt: neon skyline",
    ]


def test_serialize_catalogue_never_inlines_data_urls():
    catalogue = Catalogue(
        products=[
            Product(
                id="1",
                name="Drop Runner",
                description="Limited sneaker.",
                estimatedPrice="$120",
                imagePrompt="sneaker",
                imageUrl="data:image/png;base64," + "A" * 100_000,
            )
        ]
    )

    text = serialize_catalogue(catalogue)

    assert "IMAGE_URL: No image available" in text
    assert "base64" not in text
