# src/vision/product_analyzer.py

"""Extracts product metadata from a photo with the Claude vision API."""

import base64
import json
import logging
from typing import Any

import anthropic

from src.config.settings import Settings
from src.models.product import ProductMetadata
from src.services.exceptions import ClassificationFailed

logger = logging.getLogger("product_finder.vision")

PROMPT = """Analiza esta imagen de producto y extrae la siguiente información en formato JSON:
{
  "categoria": "tipo específico del producto en español (ej: cd, vinilo, libro, dvd, blu-ray, videojuego, celular, notebook, zapatillas, remera, etc.)",
  "titulo": "título del producto",
  "autor": "nombre del autor (si es libro/música)",
  "marca": "nombre de la marca si es visible",
  "descripcion": "descripción breve del producto"
}

Para la categoría, usa el tipo específico que la gente buscaría en MercadoLibre Argentina, no categorías genéricas. Por ejemplo:
- CD (no "música")
- Vinilo (no "música")
- Libro (no "literatura")
- DVD o Blu-ray (no "película")
- Celular o Smartphone (no "electrónica")

Responde SOLAMENTE en español. Si no puedes determinar un campo, usa null."""


def extract_first_json_object(text: str) -> dict[str, Any] | None:
    """Return the first well-formed JSON object embedded in *text*.

    Surrounding prose, code fences and trailing commentary are ignored.
    Candidate objects that fail to parse are skipped.
    """
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    return None


class ProductAnalyzer:
    """Classify a product photo into :class:`ProductMetadata`."""

    def __init__(self, client: Any | None = None) -> None:
        self.settings = Settings()
        self._client = client

    @property
    def client(self) -> Any:
        """Lazily create the async Anthropic client."""
        if self._client is None:
            if not self.settings.CLAUDE_API_KEY:
                raise ClassificationFailed("CLAUDE_API_KEY is not set")
            self._client = anthropic.AsyncAnthropic(
                api_key=self.settings.CLAUDE_API_KEY
            )
            logger.info("Anthropic client initialised")
        return self._client

    async def classify(
        self, image_bytes: bytes, mime_type: str,
    ) -> ProductMetadata:
        """Send one image to the model and parse the product fields.

        Raises:
            ClassificationFailed: on API errors or when no JSON object can
                be recovered from the response.
        """
        encoded = base64.standard_b64encode(image_bytes).decode("ascii")
        try:
            response = await self.client.messages.create(
                model=self.settings.VISION_MODEL,
                max_tokens=self.settings.VISION_MAX_TOKENS,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": mime_type,
                                    "data": encoded,
                                },
                            },
                            {"type": "text", "text": PROMPT},
                        ],
                    }
                ],
            )
        except anthropic.APIError as exc:
            raise ClassificationFailed(
                "Vision API call failed", cause=exc
            ) from exc

        text = "".join(
            getattr(block, "text", "")
            for block in response.content
            if getattr(block, "type", "") == "text"
        )
        data = extract_first_json_object(text)
        if data is None:
            raise ClassificationFailed(
                "Could not extract product data from response",
                details={"response": text[:200]},
            )

        metadata = ProductMetadata.from_dict(data)
        logger.info(
            "Product data extracted: %s",
            json.dumps(metadata.to_dict(), ensure_ascii=False),
        )
        return metadata
