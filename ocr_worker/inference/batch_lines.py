"""Batch request lines and the correlation ids that tie results back to frames."""

import json
import re
from dataclasses import dataclass
from typing import Any

from ocr_worker.preprocessing.models import WorkItem

EMPTY_SENTINEL = "<EMPTY>"
MAX_TOKENS = 96

_CORRELATION_ID = re.compile(r"^job-(.+)-batch-(\d+)-frame-(\d+)-(.+)$")


@dataclass(frozen=True)
class CorrelationId:
    job_id: str
    batch_index: int
    global_index: int
    filename: str

    def __str__(self) -> str:
        return (
            f"job-{self.job_id}-batch-{self.batch_index}"
            f"-frame-{self.global_index}-{self.filename}"
        )


def parse_correlation_id(value: str) -> CorrelationId | None:
    match = _CORRELATION_ID.match(value)
    if match is None:
        return None
    return CorrelationId(
        job_id=match.group(1),
        batch_index=int(match.group(2)),
        global_index=int(match.group(3)),
        filename=match.group(4),
    )


def build_request_line(
    correlation_id: CorrelationId, item: WorkItem, *, model: str, prompt: str
) -> str:
    """One JSONL line asking for the subtitle text of a single crop."""
    line = {
        "custom_id": str(correlation_id),
        "method": "POST",
        "url": "/v1/chat/completions",
        "body": {
            "model": model,
            "temperature": 0,
            "max_tokens": MAX_TOKENS,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": item.signed_url}},
                    ],
                }
            ],
        },
    }
    return json.dumps(line, ensure_ascii=False)


def extract_completion_text(body: dict[str, Any] | None) -> str:
    """Pull the assistant text out of a chat completion body.

    Content may be a plain string or a list of typed parts; text parts are
    concatenated in order.
    """
    if not body:
        return ""
    choices = body.get("choices") or []
    if not choices:
        return ""
    content = (choices[0].get("message") or {}).get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    return ""


def normalize_frame_text(text: str) -> str:
    """Trim, and map the no-subtitle sentinel to the empty string."""
    cleaned = text.strip()
    if cleaned == EMPTY_SENTINEL:
        return ""
    return cleaned
