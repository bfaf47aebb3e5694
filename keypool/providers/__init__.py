"""Request layers that supply operations to the failover invoker."""

from keypool.providers.gemini import (
    GeminiClient,
    extract_imagen_images,
    extract_inline_images,
    extract_text,
    image_part,
)

__all__ = ["GeminiClient", "extract_imagen_images", "extract_inline_images", "extract_text", "image_part"]
