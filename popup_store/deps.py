from popup_store.services.store_pipeline import StorePipeline
from popup_store.services.uploads import UploadStore


def get_upload_store() -> UploadStore:
    return UploadStore()


def get_store_pipeline() -> StorePipeline:
    return StorePipeline(upload_store=get_upload_store())
