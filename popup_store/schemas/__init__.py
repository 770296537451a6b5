from popup_store.schemas.catalogue import (
    Catalogue,
    Product,
    ProductDescriptor,
    ProductDraft,
    ProductDraftList,
    SynthesisResult,
)
from popup_store.schemas.chat import (
    Attachment,
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    ImageRegenerateRequest,
    UploadResponse,
)
from popup_store.schemas.generation import (
    GeneratedFile,
    GenerationRequest,
    GenerationResult,
    ModelConfiguration,
    ResolvedFile,
)
