"""Gemini-backed annotation service for drawing tile pairs.

Each request carries the Before and After crops of one tile and asks the
model for a JSON list of labeled changes. The prompt follows the structured
layout recommended for Gemini (task, context, input data, output
requirements) and the response is constrained with a JSON schema so that
parsing failures stay rare; they are still reported as AnnotationParseError
so the caller can drop the tile.

Reference: https://cloud.google.com/vertex-ai/generative-ai/docs/learn/prompts/structure-prompts
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import numpy as np
from google import genai
from google.genai import types

from ..core.entities import AnalysisMode, AnnotationResponse, ChangeCategory, ChangeKind
from ..core.exceptions import AIServiceError, AnnotationParseError
from ..utils.image_utils import encode_jpeg

logger = logging.getLogger(__name__)

MODE_INSTRUCTIONS = {
    AnalysisMode.MACRO: (
        "MODE: Overview / architectural analysis (MACRO)\n"
        "- Detect walls, room layout and large structural changes.\n"
        "- Ignore small noise and minor symbol differences."
    ),
    AnalysisMode.MICRO: (
        "MODE: Detailed / equipment analysis (MICRO)\n"
        "- Focus on electrical wiring, piping, outlets, switches and other equipment symbols.\n"
        "- Report small symbol-level and annotation changes."
    ),
}


class GeminiAnnotationService:
    """Annotation client calling the Google Gemini API through google-genai.

    Key features:
    - annotate_tile(): compare one Before/After crop pair (async)

    The underlying client is created lazily on first use.
    """

    def __init__(self, api_key: str, model: str = "gemini-3-pro-preview",
                 temperature: float = 0.2, timeout: int = 120, thinking_budget: int = 2048,
                 persona: str = "", output_language: str = "Japanese",
                 normalized_range: int = 1000, jpeg_quality: int = 80):
        """Initialize the annotation service.

        Args:
            api_key: Google AI API key
            model: Gemini model name
            temperature: Response temperature (0-1)
            timeout: Request timeout in seconds
            thinking_budget: Thinking token budget (0 disables thinking)
            persona: Role instructions placed at the top of the system prompt
            output_language: Language for titles and descriptions
            normalized_range: Upper bound of the box_2d coordinate space
            jpeg_quality: JPEG quality used to encode crops
        """
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.thinking_budget = thinking_budget
        self.persona = persona
        self.output_language = output_language
        self.normalized_range = normalized_range
        self.jpeg_quality = jpeg_quality
        self._client = None
        self._last_error: Optional[str] = None

    @classmethod
    def from_config(cls, config) -> "GeminiAnnotationService":
        return cls(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            temperature=config.gemini_temperature,
            timeout=config.gemini_timeout,
            thinking_budget=config.gemini_thinking_budget,
            persona=config.annotator_persona,
            output_language=config.output_language,
            normalized_range=config.normalized_range,
            jpeg_quality=config.jpeg_quality,
        )

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    def initialize(self) -> None:
        """Create the google-genai client.

        Raises:
            AIServiceError: If no API key is configured or the client cannot be created
        """
        if self._client is not None:
            return
        if not self.is_configured():
            self._last_error = "API key is empty"
            raise AIServiceError("Gemini annotation service is not configured (missing API key)")

        try:
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        except Exception as e:
            self._last_error = str(e)
            raise AIServiceError(f"Error initializing Gemini client: {e}") from e

        logger.info(f"Gemini annotation service initialized with model: {self.model}")

    async def annotate_tile(self, before_crop: np.ndarray, after_crop: np.ndarray,
                            mode: AnalysisMode) -> AnnotationResponse:
        """Ask the model for the changes between two crops of the same tile.

        Returns:
            Unvalidated candidate dicts (``title``, ``description``,
            ``category``, ``type``, ``box_2d``) and the total token count

        Raises:
            AIServiceError: On transport or API errors
            AnnotationParseError: If the reply is empty or not a JSON list
        """
        self.initialize()
        mode = AnalysisMode.parse(mode).effective

        contents = [
            "Detect the differences between the BEFORE image (first) and the AFTER image (second).",
            types.Part.from_bytes(data=encode_jpeg(before_crop, self.jpeg_quality), mime_type="image/jpeg"),
            types.Part.from_bytes(data=encode_jpeg(after_crop, self.jpeg_quality), mime_type="image/jpeg"),
        ]

        try:
            response = await asyncio.to_thread(
                self._client.models.generate_content,
                model=self.model,
                contents=contents,
                config=self._build_generation_config(mode),
            )
        except Exception as e:
            self._last_error = str(e)
            raise AIServiceError(f"Gemini request failed: {e}") from e

        tokens = self._token_count(response)
        text = getattr(response, "text", None) if response is not None else None
        if not text:
            raise AnnotationParseError(self._diagnose_empty_response(response, "annotate_tile"))

        return AnnotationResponse(candidates=self.parse_candidates(text), tokens_used=tokens)

    @staticmethod
    def parse_candidates(text: str) -> List[Dict[str, Any]]:
        """Parse the JSON reply into a list of dicts.

        Accepts a bare list or an object wrapping the list under ``items``,
        ``changes`` or ``differences``; also strips a Markdown code fence.

        Raises:
            AnnotationParseError: If the text is not such a JSON document
        """
        cleaned = text.strip()
        if cleaned.startswith("```"):
            cleaned = cleaned.strip("`")
            if cleaned.lower().startswith("json"):
                cleaned = cleaned[4:]
        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise AnnotationParseError(f"Annotation reply is not valid JSON: {e}") from e

        if isinstance(payload, dict):
            for key in ("items", "changes", "differences"):
                if isinstance(payload.get(key), list):
                    payload = payload[key]
                    break

        if not isinstance(payload, list):
            raise AnnotationParseError(f"Annotation reply is a {type(payload).__name__}, expected a list")

        return [item for item in payload if isinstance(item, dict)]

    @staticmethod
    def _token_count(response) -> int:
        usage = getattr(response, "usage_metadata", None)
        count = getattr(usage, "total_token_count", None) if usage is not None else None
        return int(count) if isinstance(count, (int, float)) else 0

    def build_system_instruction(self, mode: AnalysisMode) -> str:
        """System prompt in TASK / CONTEXT / MODE / OUTPUT sections."""
        mode = AnalysisMode.parse(mode).effective
        system_instruction = ""

        if self.persona.strip():
            system_instruction += f"YOUR_ROLE:\n{self.persona.strip()}\n\n"

        system_instruction += (
            "TASK:\n"
            "Compare the BEFORE and AFTER crops of the same drawing region and list every real change.\n\n"
        )
        system_instruction += (
            "RULES:\n"
            "1. Grouping: when equipment or a symbol is added or removed, include the related text "
            "nearby (tags, room names, notes) in the same box. Report one meaningful unit per change "
            "instead of fragments.\n"
            f"2. Language: write every title and description in {self.output_language}.\n\n"
        )
        system_instruction += MODE_INSTRUCTIONS[mode] + "\n\n"
        system_instruction += (
            "COORDINATES:\n"
            f"Use coordinates normalized to 0-{self.normalized_range} relative to the crop, "
            "ordered [xmin, ymin, xmax, ymax] in box_2d. For MOVED items, moved_from_2d may give "
            "the previous [x, y] position in the same space.\n\n"
        )
        system_instruction += (
            "OUTPUT:\n"
            "A JSON array of objects with title, description, "
            f"category ({', '.join(c.value for c in ChangeCategory)}), "
            f"type ({', '.join(k.value for k in ChangeKind)}) and box_2d. "
            "Return an empty array when nothing changed."
        )
        return system_instruction

    def _response_schema(self) -> types.Schema:
        return types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "title": types.Schema(type=types.Type.STRING),
                    "description": types.Schema(type=types.Type.STRING),
                    "category": types.Schema(
                        type=types.Type.STRING, enum=[c.value for c in ChangeCategory]
                    ),
                    "type": types.Schema(
                        type=types.Type.STRING, enum=[k.value for k in ChangeKind]
                    ),
                    "box_2d": types.Schema(
                        type=types.Type.ARRAY, items=types.Schema(type=types.Type.NUMBER)
                    ),
                    "moved_from_2d": types.Schema(
                        type=types.Type.ARRAY, items=types.Schema(type=types.Type.NUMBER)
                    ),
                },
                required=["title", "category", "type", "box_2d"],
            ),
        )

    def _build_generation_config(self, mode: AnalysisMode) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=self.build_system_instruction(mode),
            temperature=self.temperature,
            response_mime_type="application/json",
            response_schema=self._response_schema(),
            thinking_config=types.ThinkingConfig(thinking_budget=self.thinking_budget),
        )

    def _diagnose_empty_response(self, response, method_name: str) -> str:
        """Explain why a Gemini response carries no text."""
        if not response:
            return f"[{method_name}] Response object is None"

        diagnostics = []

        prompt_feedback = getattr(response, 'prompt_feedback', None)
        if prompt_feedback:
            block_reason = getattr(prompt_feedback, 'block_reason', None)
            if block_reason:
                diagnostics.append(f"PROMPT BLOCKED - Reason: {block_reason}")

        candidates = getattr(response, 'candidates', None)
        if not candidates:
            diagnostics.append("No candidates in response")
            return f"[{method_name}] Empty response - " + "; ".join(diagnostics)

        candidate = candidates[0]
        finish_reason = getattr(candidate, 'finish_reason', None)
        if finish_reason is not None:
            diagnostics.append(f"Finish reason: {finish_reason}")
            finish_reason_explanations = {
                'SAFETY': 'Response blocked by safety filters',
                'MAX_TOKENS': 'Response truncated due to token limit',
                'RECITATION': 'Response blocked due to recitation concerns',
            }
            finish_reason_str = str(finish_reason).split('.')[-1]
            if finish_reason_str in finish_reason_explanations:
                diagnostics.append(f"Explanation: {finish_reason_explanations[finish_reason_str]}")

        content = getattr(candidate, 'content', None)
        if not content or not getattr(content, 'parts', None):
            diagnostics.append("Candidate has no content parts")

        return f"[{method_name}] Empty response - " + "; ".join(diagnostics)
