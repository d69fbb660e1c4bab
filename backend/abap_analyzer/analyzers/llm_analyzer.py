# -*- coding: utf-8 -*-
"""LLM based analyzer utilities."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from anthropic import Anthropic
from anthropic import APIConnectionError as AnthropicConnectionError
from anthropic import APIError as AnthropicAPIError
from openai import OpenAI
from openai import APIConnectionError as OpenAIConnectionError
from openai import APIError as OpenAIAPIError

from abap_analyzer.config import DEFAULT_MODELS, get_max_output_tokens, get_max_source_chars
from abap_analyzer.intake import decode_source
from abap_analyzer.models import AVAILABLE_AGENTS, OutputFormat, UploadedFile
from abap_analyzer.prompts.analysis_prompt import (
    ABAP_ANALYSIS_PROMPT,
    AGENT_INSTRUCTIONS,
    FILE_BLOCK_TEMPLATE,
    JSON_OUTPUT_INSTRUCTIONS,
    MARKDOWN_OUTPUT_INSTRUCTIONS,
)

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("anthropic", "openai")
_PROVIDER_ALIASES = {"claude": "anthropic", "gpt": "openai"}

_AGENT_LABELS = {agent.id: agent.label for agent in AVAILABLE_AGENTS}


def normalise_provider(name: Optional[str]) -> str:
    """Map a provider name from settings onto one of ``SUPPORTED_PROVIDERS``."""

    cleaned = (name or "").strip().lower()
    cleaned = _PROVIDER_ALIASES.get(cleaned, cleaned)
    if cleaned not in SUPPORTED_PROVIDERS:
        raise ValueError(
            f"Unsupported API provider: {name!r}. Use one of: {', '.join(SUPPORTED_PROVIDERS)}."
        )
    return cleaned


class LLMAnalyzer:
    """Analyze ABAP source files with an LLM backend."""

    def __init__(
        self,
        provider: str = "anthropic",
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        max_output_tokens: Optional[int] = None,
    ) -> None:
        self.provider = normalise_provider(provider)
        self.model = (model or "").strip() or DEFAULT_MODELS[self.provider]
        self.base_url = (base_url or "").strip() or None
        self.max_output_tokens = max_output_tokens or get_max_output_tokens()

        if not api_key:
            raise ValueError("API key is not configured.")

        logger.info(
            "Creating %s client (model=%s, custom_base_url=%s)",
            self.provider,
            self.model,
            self.base_url is not None,
        )
        if self.provider == "anthropic":
            self.client = Anthropic(api_key=api_key, base_url=self.base_url)
        else:
            self.client = OpenAI(api_key=api_key, base_url=self.base_url)

    @staticmethod
    def _openai_supports_temperature(model_name: str) -> bool:
        """Return True when the given OpenAI model supports temperature."""

        unsupported_prefixes = ("gpt-5", "o1", "o3", "o4")
        if any(model_name.startswith(prefix) for prefix in unsupported_prefixes):
            logger.debug(
                "OpenAI model %s does not accept temperature; parameter skipped.",
                model_name,
            )
            return False
        return True

    @staticmethod
    def _scan_open_containers(text: str) -> tuple[List[str], bool, int]:
        """Walk ``text`` and report what is left unclosed.

        Returns the stack of open ``{``/``[`` characters, whether the text ends
        inside a string, and the index of the last comma directly inside the
        outermost container (-1 when there is none).
        """
        stack: List[str] = []
        in_string = False
        escaped = False
        last_top_comma = -1
        for index, char in enumerate(text):
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char in "{[":
                stack.append(char)
            elif char in "}]":
                if stack:
                    stack.pop()
            elif char == "," and len(stack) == 1:
                last_top_comma = index
        return stack, in_string, last_top_comma

    @staticmethod
    def _try_fix_truncated_json(json_str: str) -> Dict[str, Any] | None:
        """Recover an object from a reply that was cut off mid-stream.

        The open string and containers are closed in nesting order first. If
        that still does not parse (for example the cut fell right after a key),
        everything after the last complete top-level member is dropped.
        """
        json_str = (json_str or "").strip()
        if not json_str.startswith("{"):
            return None

        stack, in_string, last_top_comma = LLMAnalyzer._scan_open_containers(json_str)
        if not stack:
            return None

        closers = {"{": "}", "[": "]"}
        closed = json_str + ('"' if in_string else "")
        closed += "".join(closers[opener] for opener in reversed(stack))
        try:
            fixed = json.loads(closed)
        except json.JSONDecodeError:
            logger.debug("Closing open containers was not enough, dropping the incomplete member")
        else:
            logger.debug("Closed %d open container(s) in truncated reply", len(stack))
            return fixed if isinstance(fixed, dict) else None

        if last_top_comma <= 0:
            return None
        try:
            fixed = json.loads(json_str[:last_top_comma] + "}")
        except json.JSONDecodeError:
            return None
        return fixed if isinstance(fixed, dict) else None

    @staticmethod
    def _normalise_list(value: Any) -> List[str]:
        """Ensure list-like fields are always returned as a list of strings."""

        if value is None:
            return []

        if isinstance(value, list):
            return [str(item).strip() for item in value if str(item).strip()]

        if isinstance(value, str):
            cleaned = value.strip()
            if not cleaned:
                return []
            if "\n" in cleaned:
                return [segment.strip() for segment in cleaned.splitlines() if segment.strip()]
            return [cleaned]

        return [str(value).strip()]

    @staticmethod
    def _extract_json_payload(raw_text: str) -> Dict[str, Any]:
        """Extract a JSON object from an LLM response."""
        if not raw_text or not raw_text.strip():
            raise ValueError("LLM response payload is empty.")

        raw_text = raw_text.strip()
        payload: Optional[Dict[str, Any]] = None

        # Strategy 1: the whole reply
        try:
            candidate = json.loads(raw_text)
        except json.JSONDecodeError as exc:
            logger.debug("Failed to parse entire response as JSON: %s", exc)
        else:
            if isinstance(candidate, dict):
                payload = candidate
                logger.debug("Parsed entire response as JSON")

        # Strategy 2: fenced code block, even though the prompt forbids it.
        # Only an object counts; a fenced scalar is usually a snippet quoted in prose.
        if payload is None:
            code_block_match = re.search(r"```(?:json)?\s*(.+?)\s*```", raw_text, flags=re.DOTALL)
            if code_block_match:
                json_candidate = code_block_match.group(1).strip()
                try:
                    candidate = json.loads(json_candidate)
                except json.JSONDecodeError as exc:
                    logger.warning("Found markdown code block but JSON parsing failed: %s", exc)
                    candidate = LLMAnalyzer._try_fix_truncated_json(json_candidate)
                if isinstance(candidate, dict):
                    payload = candidate
                    logger.debug("Parsed JSON from markdown code block")

        # Strategy 3: first balanced object found by brace counting
        if payload is None:
            first_brace = raw_text.find("{")
            if first_brace == -1:
                logger.error("No JSON object found in response: %s", raw_text[:200])
                raise ValueError("Unable to locate JSON object in LLM response.")

            brace_count = 0
            in_string = False
            escape_next = False
            for index in range(first_brace, len(raw_text)):
                char = raw_text[index]
                if escape_next:
                    escape_next = False
                    continue
                if char == "\\":
                    escape_next = True
                    continue
                if char == '"':
                    in_string = not in_string
                    continue
                if in_string:
                    continue
                if char == "{":
                    brace_count += 1
                elif char == "}":
                    brace_count -= 1
                    if brace_count == 0:
                        json_candidate = raw_text[first_brace : index + 1]
                        try:
                            payload = json.loads(json_candidate)
                            logger.debug("Extracted JSON by brace counting")
                        except json.JSONDecodeError as exc:
                            logger.warning("Brace-counted JSON failed to parse: %s", exc)
                        break

            if payload is None and brace_count > 0:
                payload = LLMAnalyzer._try_fix_truncated_json(raw_text[first_brace:])
                if payload is not None:
                    logger.info("Recovered truncated JSON response")

        if not isinstance(payload, dict):
            logger.error("All parsing strategies failed. Response preview: %s", raw_text[:500])
            raise ValueError("Unable to parse JSON from LLM response after trying all strategies.")

        return payload

    @staticmethod
    def _parse_structured_output(raw_text: str) -> Dict[str, Any]:
        """Parse the LLM response into the standardized dictionary format."""

        payload = LLMAnalyzer._extract_json_payload(raw_text)
        structured: Dict[str, Any] = {
            "format": OutputFormat.JSON.value,
            "summary": str(payload.get("summary") or "").strip(),
            "recommendations": LLMAnalyzer._normalise_list(payload.get("recommendations")),
        }

        raw_files = payload.get("files")
        if raw_files is None:
            files: List[Dict[str, Any]] = []
        elif isinstance(raw_files, list):
            files = [item if isinstance(item, dict) else {"overview": str(item)} for item in raw_files]
        elif isinstance(raw_files, dict):
            files = [raw_files]
        else:
            files = [{"overview": str(raw_files)}]
        structured["files"] = files

        extra_fields = {key: value for key, value in payload.items() if key not in structured}
        structured.update(extra_fields)
        return structured

    @staticmethod
    def _parse_markdown_output(raw_text: str) -> Dict[str, Any]:
        content = (raw_text or "").strip()
        if not content:
            raise ValueError("LLM response payload is empty.")
        return {"format": OutputFormat.MARKDOWN.value, "content": content}

    def _build_prompt(
        self,
        files: Sequence[UploadedFile],
        agents: Sequence[str],
        output_format: OutputFormat,
    ) -> str:
        """Compose the review prompt from the uploaded sources and selected agents."""

        max_chars = get_max_source_chars()
        file_blocks: List[str] = []
        for uploaded in files:
            source, truncated = decode_source(uploaded.content, max_chars)
            if truncated:
                logger.info("Source %s truncated to %d characters", uploaded.name, max_chars)
            file_blocks.append(
                FILE_BLOCK_TEMPLATE.format(
                    name=uploaded.name,
                    size=uploaded.size,
                    truncated=f" [truncated to first {max_chars} characters]" if truncated else "",
                    source=source,
                )
            )

        if agents:
            agent_lines = [
                f"- {_AGENT_LABELS[agent]} ({agent}): {AGENT_INSTRUCTIONS[agent]}"
                for agent in agents
            ]
        else:
            agent_lines = ["- General review: summarise what the code does and its main risks."]

        if output_format == OutputFormat.MARKDOWN:
            output_instructions = MARKDOWN_OUTPUT_INSTRUCTIONS
        else:
            agent_schema = ",\n".join(
                f'        "{agent}": {{"findings": ["..."], "recommendations": ["..."]}}'
                for agent in agents
            )
            output_instructions = JSON_OUTPUT_INSTRUCTIONS.format(agent_schema=agent_schema)

        return ABAP_ANALYSIS_PROMPT.format(
            agents="\n".join(agent_lines),
            file_count=len(file_blocks),
            files="\n\n".join(file_blocks),
            output_instructions=output_instructions,
        ).strip()

    def analyze(
        self,
        files: Sequence[UploadedFile],
        agents: Sequence[str],
        output_format: OutputFormat = OutputFormat.JSON,
    ) -> Dict[str, Any]:
        """Create the analysis prompt and dispatch it to the chosen provider."""

        if not files:
            raise ValueError("At least one ABAP file is required for analysis.")

        output_format = OutputFormat(output_format)
        prompt = self._build_prompt(files, agents, output_format)
        logger.debug(
            "LLM prompt prepared (provider=%s, length=%s characters)",
            self.provider,
            len(prompt),
        )

        if self.provider == "anthropic":
            raw_text, usage_info = self._complete_with_claude(prompt, output_format)
        else:
            raw_text, usage_info = self._complete_with_gpt(prompt, output_format)

        if output_format == OutputFormat.MARKDOWN:
            result = self._parse_markdown_output(raw_text)
        else:
            result = self._parse_structured_output(raw_text)
        if usage_info:
            result["token_usage"] = usage_info
        return result

    @staticmethod
    def _system_instruction(output_format: OutputFormat) -> str:
        if output_format == OutputFormat.MARKDOWN:
            return (
                "You are an expert SAP ABAP reviewer. Reply in well structured Markdown only. "
                "Base every statement on the supplied source code."
            )
        return (
            "You are an expert SAP ABAP reviewer that strictly replies with ONLY a valid JSON object. "
            "CRITICAL: Return PURE JSON ONLY - NO markdown, NO code blocks, NO explanatory text. "
            "Start your response with { and end with }. "
            'The JSON must contain the keys "summary", "files" and "recommendations". '
            "Ensure all strings are properly escaped, especially quotes and newlines."
        )

    def _complete_with_claude(
        self, prompt: str, output_format: OutputFormat
    ) -> tuple[str, Dict[str, int]]:
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_output_tokens,
                temperature=0,
                system=self._system_instruction(output_format),
                messages=[{"role": "user", "content": prompt}],
            )
        except (TimeoutError, AnthropicConnectionError, AnthropicAPIError) as exc:
            logger.exception("Claude request failed")
            raise RuntimeError(f"Claude request failed: {exc}") from exc

        text_chunks = []
        for block in getattr(response, "content", None) or []:
            if getattr(block, "type", "") == "text":
                text_chunks.append(getattr(block, "text", ""))
        raw_text = "".join(text_chunks).strip()

        usage_info: Dict[str, int] = {}
        usage = getattr(response, "usage", None)
        if usage is not None:
            if getattr(usage, "input_tokens", None) is not None:
                usage_info["input_tokens"] = usage.input_tokens
            if getattr(usage, "output_tokens", None) is not None:
                usage_info["output_tokens"] = usage.output_tokens
            if "input_tokens" in usage_info and "output_tokens" in usage_info:
                usage_info["total_tokens"] = usage_info["input_tokens"] + usage_info["output_tokens"]

        if getattr(response, "stop_reason", None) == "max_tokens":
            logger.warning("Claude response hit max_tokens=%d, output may be truncated", self.max_output_tokens)

        logger.debug(
            "Claude response received (length=%s characters, tokens=%s)",
            len(raw_text),
            usage_info.get("total_tokens", "N/A"),
        )
        return raw_text, usage_info

    def _complete_with_gpt(
        self, prompt: str, output_format: OutputFormat
    ) -> tuple[str, Dict[str, int]]:
        # OpenAI-compatible gateways behind a custom base URL rarely implement
        # the Responses API, so those go through chat completions.
        if self.base_url:
            return self._complete_with_chat_completions(prompt, output_format)

        request_kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_output_tokens": self.max_output_tokens,
            "input": [
                {
                    "role": "system",
                    "content": [
                        {"type": "input_text", "text": self._system_instruction(output_format)},
                    ],
                },
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": prompt}],
                },
            ],
        }
        if self._openai_supports_temperature(self.model):
            request_kwargs["temperature"] = 0
        if output_format == OutputFormat.JSON:
            request_kwargs["text"] = {"format": {"type": "json_object"}}

        try:
            response = self.client.responses.create(**request_kwargs)
        except (TimeoutError, OpenAIConnectionError, OpenAIAPIError) as exc:
            logger.exception("OpenAI request failed")
            raise RuntimeError(f"OpenAI request failed: {exc}") from exc

        raw_text = ""
        collected_chunks: List[str] = []
        for output_block in getattr(response, "output", None) or []:
            for content in getattr(output_block, "content", None) or []:
                if getattr(content, "type", "") in {"output_text", "text", ""}:
                    text_value = getattr(content, "text", "") or ""
                    if text_value:
                        collected_chunks.append(text_value)
        raw_text = "".join(collected_chunks).strip()
        if not raw_text:
            raw_text = (getattr(response, "output_text", "") or "").strip()

        usage_info = self._openai_usage(getattr(response, "usage", None))
        logger.debug(
            "OpenAI response received (length=%s characters, tokens=%s)",
            len(raw_text),
            usage_info.get("total_tokens", "N/A"),
        )
        return raw_text, usage_info

    def _complete_with_chat_completions(
        self, prompt: str, output_format: OutputFormat
    ) -> tuple[str, Dict[str, int]]:
        request_kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_output_tokens,
            "messages": [
                {"role": "system", "content": self._system_instruction(output_format)},
                {"role": "user", "content": prompt},
            ],
        }
        if self._openai_supports_temperature(self.model):
            request_kwargs["temperature"] = 0

        try:
            response = self.client.chat.completions.create(**request_kwargs)
        except (TimeoutError, OpenAIConnectionError, OpenAIAPIError) as exc:
            logger.exception("OpenAI-compatible request failed (base_url=%s)", self.base_url)
            raise RuntimeError(f"OpenAI request failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        raw_text = ""
        if choices:
            message = getattr(choices[0], "message", None)
            raw_text = (getattr(message, "content", "") or "").strip()

        usage_info = self._openai_usage(getattr(response, "usage", None))
        logger.debug(
            "Chat completion received (length=%s characters, tokens=%s)",
            len(raw_text),
            usage_info.get("total_tokens", "N/A"),
        )
        return raw_text, usage_info

    @staticmethod
    def _openai_usage(usage: Any) -> Dict[str, int]:
        """Normalise Responses and Chat Completions usage objects."""

        usage_info: Dict[str, int] = {}
        if usage is None:
            return usage_info
        input_tokens = getattr(usage, "input_tokens", None)
        if input_tokens is None:
            input_tokens = getattr(usage, "prompt_tokens", None)
        output_tokens = getattr(usage, "output_tokens", None)
        if output_tokens is None:
            output_tokens = getattr(usage, "completion_tokens", None)
        if input_tokens is not None:
            usage_info["input_tokens"] = input_tokens
        if output_tokens is not None:
            usage_info["output_tokens"] = output_tokens
        total_tokens = getattr(usage, "total_tokens", None)
        if total_tokens is not None:
            usage_info["total_tokens"] = total_tokens
        elif "input_tokens" in usage_info and "output_tokens" in usage_info:
            usage_info["total_tokens"] = usage_info["input_tokens"] + usage_info["output_tokens"]
        return usage_info


__all__ = ["LLMAnalyzer", "SUPPORTED_PROVIDERS", "normalise_provider"]
