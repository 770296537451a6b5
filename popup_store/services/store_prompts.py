from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from popup_store.schemas.catalogue import DEFAULT_CATEGORY, Catalogue
from popup_store.schemas.images import is_data_url

STORE_SYSTEM_PROMPT = (
    "You are an expert e-commerce designer and Next.js developer who builds viral pop-up "
    "store landing pages. You write production-ready React components styled with Tailwind "
    "CSS and you always use the product data you are given verbatim."
)

STORE_LAYOUT_INSTRUCTIONS = """Create a viral pop-up store landing page.

Build a single-page Next.js store with:
- Eye-catching hero section with trend-themed design
- Simple product grid showing every product from the catalogue with its price
- No need to add things like "Add to favorites" or "Add to cart"
- Quick "Buy Now" buttons for each product
- The "Buy Now" button should open a modal with a checkout form (the pay function can be mocked)
- Minimal navigation (just logo and no cart)
- Mobile-first responsive design
- Trendy colors and bold typography
- No social sharing buttons or testimonials
- Use the IMAGE_URL of each product as its image; only create new images for the hero and decorative sections

Focus on: Simple, fast, impulse-buy experience. No complex menus or pages."""

CONTINUATION_INSTRUCTIONS = (
    "Update the existing store with the request below. Keep the single-page layout and the "
    "same product catalogue data unless the request explicitly changes it."
)

STORE_READY_MESSAGE = (
    "Your pop-up store is ready! Check out the preview, browse the generated files, "
    "or tell me what to change next."
)
STORE_FAILED_MESSAGE = (
    "Sorry, something went wrong while building your store. "
    "Your previous version is unchanged, so please try again in a moment."
)

MISSING_IMAGE_TEXT = "No image available"
MISSING_PRICE_TEXT = "Contact for pricing"


class ChatState(str, enum.Enum):
    NEW = "new"
    CONTINUING = "continuing"

    @classmethod
    def for_chat_id(cls, chat_id: Optional[str]) -> "ChatState":
        return cls.CONTINUING if chat_id else cls.NEW


@dataclass(frozen=True)
class ComposedPrompt:
    system: Optional[str]
    message: str


def _field(value: Optional[str], placeholder: str) -> str:
    cleaned = (value or "").strip()
    return cleaned or placeholder


def _image_field(value: Optional[str]) -> str:
    # Inline data URLs are never embedded in the prompt.
    if value and is_data_url(value.strip()):
        return MISSING_IMAGE_TEXT
    return _field(value, MISSING_IMAGE_TEXT)


def serialize_catalogue(catalogue: Catalogue) -> str:
    """
    Render the catalogue as tagged blocks for embedding in a prompt.

    Every block carries all five fields; absent values render placeholder text so the
    shape of each block never changes.
    """
    blocks = ["[PRODUCT_CATALOGUE]"]
    for index, product in enumerate(catalogue.products, start=1):
        blocks.extend(
            [
                f"[PRODUCT_{index}]",
                f"NAME: {_field(product.name, 'Unnamed product')}",
                f"DESCRIPTION: {_field(product.description, 'No description available')}",
                f"PRICE: {_field(product.estimatedPrice, MISSING_PRICE_TEXT)}",
                f"CATEGORY: {_field(product.category, DEFAULT_CATEGORY)}",
                f"IMAGE_URL: {_image_field(product.imageUrl)}",
                f"[/PRODUCT_{index}]",
            ]
        )
    blocks.append("[/PRODUCT_CATALOGUE]")
    return "\n".join(blocks)


def compose_store_prompt(
    user_text: str,
    serialized_catalogue: Optional[str],
    has_chat_id: bool,
) -> ComposedPrompt:
    request = user_text.strip()
    catalogue_block = (serialized_catalogue or "").strip()

    if has_chat_id:
        sections = [CONTINUATION_INSTRUCTIONS]
        if catalogue_block:
            sections.append(f"Product catalogue (same data as before):\n{catalogue_block}")
        sections.append(f"Request: {request}")
        return ComposedPrompt(system=None, message="\n\n".join(sections))

    sections = [STORE_LAYOUT_INSTRUCTIONS]
    if catalogue_block:
        sections.append(f"Use exactly these products:\n{catalogue_block}")
    sections.append(f"Create a {request}. Use Tailwind CSS and modern React components.")
    return ComposedPrompt(system=STORE_SYSTEM_PROMPT, message="\n\n".join(sections))


def compose_image_regeneration_message(*, file_path: str, prompt: str, size: str, format: str) -> str:
    return "\n".join(
        [
            "Regenerate ONE image asset only.",
            f"Target path: {file_path}",
            f"Image requirements: {size}, format: {format}",
            "Keep the same file name and path.",
            "Do not modify or delete any other files.",
            f"Prompt: {prompt}",
        ]
    )
