from ocr_worker.config.settings import Settings
from ocr_worker.preprocessing.pillow_transformer import PillowFrameTransformer
from ocr_worker.preprocessing.transform_base import BaseFrameTransformer


class FrameTransformerFactory:
    """Creates the configured frame transformer."""

    ADAPTERS: dict[str, type[BaseFrameTransformer]] = {
        "pillow": PillowFrameTransformer,
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseFrameTransformer:
        name = settings.frame_transformer.lower()
        adapter_cls = cls.ADAPTERS.get(name)
        if adapter_cls is None:
            raise ValueError(
                f"Unknown frame transformer '{name}'. Choose from: {list(cls.ADAPTERS)}"
            )
        return adapter_cls()
