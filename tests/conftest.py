import os
import sys
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ["LANGFUSE_ENABLED"] = "false"
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="popup-store-uploads-"))
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")
os.environ.setdefault("V0_API_KEY", "test-v0-key")

from popup_store.deps import get_store_pipeline, get_upload_store
from popup_store.main import create_app
from popup_store.schemas.catalogue import Catalogue, Product, ProductDescriptor, SynthesisResult
from popup_store.schemas.generation import GenerationResult
from popup_store.services.store_pipeline import StorePipeline
from popup_store.services.uploads import UploadStore


class FakeCatalogueSynthesizer:
    def __init__(self, products=None, *, fallback: bool = False) -> None:
        self.products = products or [
            ProductDescriptor(
                id="1",
                name="Drop Runner",
                description="Limited sneaker for the drop.",
                estimatedPrice="$120",
                imagePrompt="a white high-top sneaker",
            )
        ]
        self.fallback = fallback
        self.calls: list[tuple[str, object]] = []

    def synthesize(self, user_text, image=None):
        self.calls.append((user_text, image))
        if self.fallback:
            return SynthesisResult.fallback(self.products, error="provider down")
        return SynthesisResult.ok(self.products)


class FakeImageSynthesizer:
    def __init__(self, image_url: str = "https://images.test/1.webp") -> None:
        self.image_url = image_url
        self.calls: list[tuple[list, object]] = []

    def synthesize(self, products, reference=None):
        self.calls.append((list(products), reference))
        return SynthesisResult.ok(
            Catalogue(
                products=[
                    Product(**product.model_dump(), imageUrl=self.image_url)
                    for product in products
                ]
            )
        )


class FakeGenerationClient:
    def __init__(self, result: GenerationResult | None = None, error: Exception | None = None) -> None:
        self.result = result or GenerationResult(
            id="chat-123",
            demoUrl="https://demo.test/chat-123",
            files=[
                {"path": "app/page.tsx", "content": "export default function Page() {}", "lang": "tsx"},
                {"meta": {"file": "public/hero.png", "url": "https://blob.test/hero.png"}, "source": ""},
            ],
        )
        self.error = error
        self.requests = []

    def generate(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture()
def upload_store(tmp_path: Path) -> UploadStore:
    return UploadStore(root=tmp_path / "uploads", public_base_url="http://testserver")


@pytest.fixture()
def generation_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture()
def store_pipeline(generation_client, upload_store) -> StorePipeline:
    return StorePipeline(
        catalogue_synthesizer=FakeCatalogueSynthesizer(),
        image_synthesizer=FakeImageSynthesizer(),
        generation_client=generation_client,
        upload_store=upload_store,
    )


@pytest.fixture()
def api_client(store_pipeline, upload_store):
    app = create_app()
    app.dependency_overrides[get_store_pipeline] = lambda: store_pipeline
    app.dependency_overrides[get_upload_store] = lambda: upload_store
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
