from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from popup_store.observability import start_langfuse_span
from popup_store.schemas.catalogue import Catalogue
from popup_store.schemas.generation import GenerationRequest, GenerationResult
from popup_store.services.attachments import normalize_attachments
from popup_store.services.catalogue import CatalogueSynthesizer
from popup_store.services.file_tree import (
    DirectoryNode,
    build_file_tree,
    first_file_path,
    resolve_generated_files,
)
from popup_store.services.generation_client import V0Client, build_model_configuration
from popup_store.services.product_images import ProductImageSynthesizer
from popup_store.services.store_prompts import (
    ChatState,
    compose_image_regeneration_message,
    compose_store_prompt,
    serialize_catalogue,
)
from popup_store.services.uploads import UploadStore

logger = logging.getLogger(__name__)

IMAGE_ONLY_REQUEST = "pop-up store inspired by the attached reference image"
MISSING_INPUT_ERROR = "Message or attachments are required"


class MissingInputError(ValueError):
    pass


@dataclass
class PipelineResult:
    id: str
    demo: Optional[str]
    files: list[dict[str, Any]]
    tree: DirectoryNode
    selected_file: Optional[str] = None
    catalogue: Optional[Catalogue] = None
    fallbacks: list[str] = field(default_factory=list)


class StorePipeline:
    def __init__(
        self,
        *,
        catalogue_synthesizer: Optional[CatalogueSynthesizer] = None,
        image_synthesizer: Optional[ProductImageSynthesizer] = None,
        generation_client: Optional[V0Client] = None,
        upload_store: Optional[UploadStore] = None,
    ) -> None:
        self._catalogue_synthesizer = catalogue_synthesizer
        self._image_synthesizer = image_synthesizer
        self._generation_client = generation_client
        self._upload_store = upload_store

    @property
    def generation_client(self) -> V0Client:
        if self._generation_client is None:
            self._generation_client = V0Client()
        return self._generation_client

    def run(
        self,
        *,
        message: str,
        chat_id: Optional[str] = None,
        attachments: Iterable[Any] | None = None,
    ) -> PipelineResult:
        """
        Run one chat turn: attachments, catalogue, product images, prompt, generation, tree.

        Catalogue and image failures degrade to fallbacks; generation failures propagate.
        """
        state = ChatState.for_chat_id(chat_id)
        user_text = message.strip()
        reference = normalize_attachments(attachments, store=self._upload_store)
        if not user_text:
            if reference is None:
                raise MissingInputError(MISSING_INPUT_ERROR)
            user_text = IMAGE_ONLY_REQUEST

        with start_langfuse_span(
            name="store_pipeline",
            input={"message": user_text, "chatId": chat_id, "hasReference": reference is not None},
            metadata={"state": state.value},
        ) as span:
            fallbacks: list[str] = []

            catalogue_synthesizer = self._catalogue_synthesizer or CatalogueSynthesizer()
            drafts = catalogue_synthesizer.synthesize(user_text, reference)
            if drafts.is_fallback:
                fallbacks.append("catalogue")

            image_synthesizer = self._image_synthesizer or ProductImageSynthesizer(upload_store=self._upload_store)
            images = image_synthesizer.synthesize(drafts.value, reference)
            if images.is_fallback:
                fallbacks.append("product_images")
            catalogue = images.value

            composed = compose_store_prompt(
                user_text,
                serialize_catalogue(catalogue),
                has_chat_id=state is ChatState.CONTINUING,
            )
            request = GenerationRequest(
                chatId=chat_id or None,
                userMessage=user_text,
                composedPrompt=composed.message,
                system=composed.system,
                modelConfig=build_model_configuration(),
            )
            generated = self.generation_client.generate(request)
            result = self._to_result(generated, catalogue=catalogue, fallbacks=fallbacks)

            if span is not None:
                span.update(output={"chatId": result.id, "fileCount": len(result.files), "fallbacks": fallbacks})

        if fallbacks:
            logger.warning(
                "Store generated with fallback content",
                extra={"chat_id": result.id, "fallbacks": fallbacks},
            )
        logger.info(
            "Store generation completed",
            extra={
                "chat_id": result.id,
                "state": state.value,
                "product_count": catalogue.totalProducts,
                "file_count": len(result.files),
            },
        )
        return result

    def regenerate_image(
        self,
        *,
        chat_id: str,
        file_path: str,
        prompt: str,
        size: str = "1024x1024",
        format: str = "png",
    ) -> PipelineResult:
        message = compose_image_regeneration_message(file_path=file_path, prompt=prompt, size=size, format=format)
        request = GenerationRequest(
            chatId=chat_id,
            userMessage=prompt,
            composedPrompt=message,
            modelConfig=build_model_configuration(),
        )
        with start_langfuse_span(
            name="regenerate_image",
            input={"chatId": chat_id, "filePath": file_path, "prompt": prompt},
        ):
            generated = self.generation_client.generate(request)
        logger.info(
            "Image regeneration completed",
            extra={"chat_id": generated.id, "path": file_path, "file_count": len(generated.files)},
        )
        return self._to_result(generated)

    @staticmethod
    def _to_result(
        generated: GenerationResult,
        *,
        catalogue: Optional[Catalogue] = None,
        fallbacks: Optional[list[str]] = None,
    ) -> PipelineResult:
        resolved = resolve_generated_files(generated.files)
        return PipelineResult(
            id=generated.id,
            demo=generated.demoUrl,
            files=generated.files,
            tree=build_file_tree(resolved),
            selected_file=first_file_path(resolved),
            catalogue=catalogue,
            fallbacks=list(fallbacks or []),
        )
