"""Gemini REST client used as the request layer behind the failover invoker.

Every call takes the API key as an argument so it can be wrapped in a
closure and handed to :meth:`FailoverInvoker.invoke`::

    text = await invoker.invoke(lambda key: client.generate_text(key, model, prompt))

Requests go straight to the Gemini API unless a proxy URL is configured, in
which case they are sent to ``{proxy_url}/{proxy_api_version}/{endpoint}`` with
the key as a query parameter. The proxy forwards to the stable ``v1`` API by
default, while direct requests use ``v1beta``.
"""

import base64
import binascii
from typing import Any

import httpx
import structlog

from keypool.config.settings import DEFAULT_API_BASE_URL, DEFAULT_IMAGE_MODEL, ProviderConfig
from keypool.exceptions import ExternalServiceError

log = structlog.get_logger(__name__)

PROXY_CLIENT_HEADER = "gemini-studio-web-proxy"
JPEG_MAGIC = b"\xff\xd8"
IMAGEN_ASPECT_RATIOS = ("1:1", "3:4", "4:3", "9:16", "16:9")


def join_url(base: str, endpoint: str) -> str:
    """Join a base URL and endpoint without doubling slashes."""
    return f"{base.rstrip('/')}/{endpoint.lstrip('/')}"


def image_part(data: str) -> dict[str, Any]:
    """Build an inline image part from a data URI or a bare base64 string.

    Bare base64 is sniffed for the JPEG magic bytes and otherwise assumed PNG.
    """
    header, _, payload = data.partition(",")
    if payload:
        mime_type = "image/png"
        if header.startswith("data:") and ";" in header:
            mime_type = header[len("data:") : header.index(";")] or mime_type
        return {"inlineData": {"data": payload, "mimeType": mime_type}}

    try:
        raw = base64.b64decode(header[:8] + "=" * (-len(header[:8]) % 4))
    except (binascii.Error, ValueError):
        raw = b""
    mime_type = "image/jpeg" if raw.startswith(JPEG_MAGIC) else "image/png"
    return {"inlineData": {"data": header, "mimeType": mime_type}}


def _candidate_parts(response: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = response.get("candidates") or []
    if not candidates:
        return []
    content = candidates[0].get("content") or {}
    return list(content.get("parts") or [])


def extract_text(response: dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""
    return "".join(part.get("text", "") for part in _candidate_parts(response))


def extract_inline_images(response: dict[str, Any], limit: int | None = None) -> list[str]:
    """Inline images of the first candidate as ``data:<mime>;base64,<data>`` URIs."""
    images = [
        f"data:{part['inlineData'].get('mimeType', 'image/png')};base64,{part['inlineData']['data']}"
        for part in _candidate_parts(response)
        if (part.get("inlineData") or {}).get("data")
    ]
    return images[:limit] if limit is not None else images


def extract_imagen_images(response: dict[str, Any]) -> list[str]:
    """Imagen results as ``data:<mime>;base64,<data>`` URIs.

    Handles both the ``generateImages`` shape (``generatedImages[].image.imageBytes``)
    and the ``predict`` shape (``predictions[].bytesBase64Encoded``).
    """
    images = []
    for generated in response.get("generatedImages") or []:
        image = generated.get("image") or {}
        if image.get("imageBytes"):
            images.append(f"data:{image.get('mimeType', 'image/jpeg')};base64,{image['imageBytes']}")
    for prediction in response.get("predictions") or []:
        if prediction.get("bytesBase64Encoded"):
            images.append(f"data:{prediction.get('mimeType', 'image/jpeg')};base64,{prediction['bytesBase64Encoded']}")
    return images


class GeminiClient:
    """Thin async client for the Gemini REST API."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        api_version: str = "v1beta",
        proxy_url: str | None = None,
        proxy_api_version: str = "v1",
        image_model: str = DEFAULT_IMAGE_MODEL,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Gemini API base URL
            api_version: Version path segment for direct requests
            proxy_url: Optional proxy; when set, requests are sent through it
            proxy_api_version: Version path segment for proxied requests
            image_model: Imagen model used by :meth:`generate_imagen`
            timeout: Request timeout in seconds
            client: Pre-built httpx client (tests inject one with a mock transport)
        """
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.proxy_url = proxy_url
        self.proxy_api_version = proxy_api_version
        self.image_model = image_model
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_config(cls, config: ProviderConfig) -> "GeminiClient":
        return cls(
            base_url=config.base_url,
            api_version=config.api_version,
            proxy_url=config.proxy_url,
            proxy_api_version=config.proxy_api_version,
            image_model=config.image_model,
            timeout=config.timeout,
        )

    @property
    def uses_proxy(self) -> bool:
        return bool(self.proxy_url)

    def endpoint_url(self, endpoint: str) -> str:
        """Absolute URL for an API endpoint such as ``models/gemini-2.5-flash:generateContent``."""
        if self.proxy_url:
            return join_url(self.proxy_url, f"{self.proxy_api_version}/{endpoint.lstrip('/')}")
        return join_url(self.base_url, f"{self.api_version}/{endpoint.lstrip('/')}")

    async def _request(self, method: str, endpoint: str, api_key: str, body: dict[str, Any] | None = None) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.uses_proxy:
            headers["x-goog-api-client"] = PROXY_CLIENT_HEADER

        url = self.endpoint_url(endpoint)
        try:
            response = await self.client.request(method, url, params={"key": api_key}, json=body, headers=headers)
        except httpx.HTTPError as e:
            log.error("gemini_request_failed", endpoint=endpoint, error=str(e))
            raise ExternalServiceError(f"Gemini request failed: {e}") from e

        if not response.is_success:
            log.warning("gemini_request_rejected", endpoint=endpoint, status_code=response.status_code)
            raise ExternalServiceError(
                f"Gemini API error: {response.text}",
                status_code=response.status_code,
                response_text=response.text,
            )

        return response.json()

    async def list_models(self, api_key: str) -> list[str]:
        """Names of the models visible to ``api_key``."""
        data = await self._request("GET", "models", api_key)
        return [model.get("name", "") for model in data.get("models", [])]

    async def generate_content(
        self,
        api_key: str,
        model: str,
        parts: list[dict[str, Any]],
        generation_config: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call ``models/{model}:generateContent`` and return the raw response."""
        body: dict[str, Any] = {"contents": [{"parts": parts}]}
        if generation_config:
            body["generationConfig"] = generation_config

        log.info("gemini_generate", model=model, parts=len(parts), proxy=self.uses_proxy)
        response: dict[str, Any] = await self._request("POST", f"models/{model}:generateContent", api_key, body)

        feedback = response.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            raise ExternalServiceError(f"Prompt blocked by safety filters: {feedback['blockReason']}")

        return response

    async def generate_text(self, api_key: str, model: str, prompt: str) -> str:
        """Generate text for ``prompt``.

        Raises:
            ExternalServiceError: If the request fails or the response has no text
        """
        response = await self.generate_content(api_key, model, [{"text": prompt}])
        text = extract_text(response)
        if not text:
            raise ExternalServiceError("The model returned no text")
        return text

    async def generate_images(
        self,
        api_key: str,
        model: str,
        prompt: str,
        images: list[str] | None = None,
        limit: int | None = None,
    ) -> list[str]:
        """Generate images from a prompt and optional reference images (data URIs).

        Raises:
            ExternalServiceError: If the request fails or no image comes back
        """
        parts = [image_part(image) for image in images or []]
        parts.append({"text": prompt})

        response = await self.generate_content(
            api_key,
            model,
            parts,
            generation_config={"responseModalities": ["IMAGE", "TEXT"]},
        )
        generated = extract_inline_images(response, limit=limit)
        if not generated:
            raise ExternalServiceError("The model did not generate any images")
        return generated

    async def generate_imagen(
        self,
        api_key: str,
        prompt: str,
        number_of_images: int = 1,
        aspect_ratio: str = "1:1",
        negative_prompt: str | None = None,
        model: str | None = None,
    ) -> list[str]:
        """Generate images with an Imagen model and return them as JPEG data URIs.

        Proxied requests use ``models/{model}:generateImages`` with a ``config``
        object; direct requests use ``models/{model}:predict`` with
        ``instances`` and ``parameters``.

        Raises:
            ValueError: If the count or aspect ratio is not supported
            ExternalServiceError: If the request fails or no image comes back
        """
        if not 1 <= number_of_images <= 4:
            raise ValueError(f"number_of_images must be between 1 and 4, got: {number_of_images}")
        if aspect_ratio not in IMAGEN_ASPECT_RATIOS:
            raise ValueError(f"Unsupported aspect ratio: {aspect_ratio}")

        model = model or self.image_model
        log.info("imagen_generate", model=model, count=number_of_images, proxy=self.uses_proxy)

        if self.uses_proxy:
            config: dict[str, Any] = {
                "numberOfImages": number_of_images,
                "outputMimeType": "image/jpeg",
                "aspectRatio": aspect_ratio,
            }
            if negative_prompt:
                config["negativePrompt"] = negative_prompt
            body = {"prompt": prompt, "config": config}
            response = await self._request("POST", f"models/{model}:generateImages", api_key, body)
        else:
            parameters: dict[str, Any] = {
                "sampleCount": number_of_images,
                "outputOptions": {"mimeType": "image/jpeg"},
                "aspectRatio": aspect_ratio,
            }
            if negative_prompt:
                parameters["negativePrompt"] = negative_prompt
            body = {"instances": [{"prompt": prompt}], "parameters": parameters}
            response = await self._request("POST", f"models/{model}:predict", api_key, body)

        generated = extract_imagen_images(response)
        if not generated:
            raise ExternalServiceError("The model did not generate any images")
        return generated

    async def aclose(self) -> None:
        await self.client.aclose()
