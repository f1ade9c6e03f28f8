import json
import logging
import re

import httpx

from config import config
from utils.csv_utils import parse_csv_with_headers, detect_column_roles
from utils.errors import GrokError

logger = logging.getLogger(__name__)

SYSTEM_MESSAGE = (
    "You are a data transformation assistant for a sales forecasting tool. "
    "You receive sample rows of a CSV file and instructions. Always answer with a "
    "single valid JSON object and nothing else."
)
SYSTEM_MESSAGE_WITH_REASONING = SYSTEM_MESSAGE + (
    " Include a \"reasoning\" field explaining which patterns you detected and "
    "which transformations you applied."
)

DEFAULT_TRANSFORM_INSTRUCTIONS = (
    "Reshape the data so that there is one row per product with a 'Material Code' column, "
    "an optional 'Description' column, and one column per period named with an ISO date "
    "(yyyy-mm-dd). Values are numeric sales quantities."
)
DEFAULT_CONFIG_INSTRUCTIONS = (
    "Produce a list of operations (rename, combine, filter, select, pivot_wider, pivot_longer) "
    "that reshapes the full file into one row per product with one column per period."
)


def call_grok(prompt: str, max_tokens: int = 4000, include_reasoning: bool = False) -> str:
    """Send one chat completion to the Grok API and return the message content."""
    if not config.GROK_API_KEY:
        raise GrokError("GROK_API_KEY is not set.")

    payload = {
        "model": config.GROK_MODEL,
        "messages": [
            {"role": "system", "content": SYSTEM_MESSAGE_WITH_REASONING if include_reasoning else SYSTEM_MESSAGE},
            {"role": "user", "content": prompt},
        ],
        "response_format": {"type": "json_object"},
        "max_tokens": max_tokens,
        "temperature": 0.1,
    }

    try:
        with httpx.Client(timeout=config.GROK_TIMEOUT) as client:
            res = client.post(
                f"{config.GROK_BASE_URL.rstrip('/')}/chat/completions",
                headers={"Authorization": f"Bearer {config.GROK_API_KEY}", "Content-Type": "application/json"},
                json=payload,
            )
            res.raise_for_status()
            data = res.json()
    except httpx.HTTPError as e:
        logger.error(f"Grok request failed: {e}")
        raise GrokError(f"Grok request failed: {e}") from e

    try:
        return str(data["choices"][0]["message"]["content"])
    except (KeyError, IndexError, TypeError) as e:
        raise GrokError("Unexpected Grok response shape") from e


def parse_grok_json(text: str):
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        match = re.search(r"\{[\s\S]*\}", text or "")
        if not match:
            raise GrokError("Failed to parse Grok response as JSON")
        try:
            return json.loads(match.group(0))
        except ValueError as e:
            raise GrokError("Failed to parse Grok response as JSON") from e


def grok_transform(csv_text: str, instructions: str | None = None, reasoning_enabled: bool = False):
    rows, _, _ = parse_csv_with_headers(csv_text)

    output_format = (
        '{"reasoning": "how the instructions were applied", "data": [transformed rows as objects]}'
        if reasoning_enabled else '{"data": [transformed rows as objects]}'
    )
    prompt = (
        f"CSV Data (first 5 rows):\n{json.dumps(rows[:5], indent=2)}\n\n"
        f"Instructions:\n{instructions or DEFAULT_TRANSFORM_INSTRUCTIONS}\n\n"
        f"Output Format:\n{output_format}"
    )
    response = call_grok(prompt, 4000, reasoning_enabled)
    parsed = parse_grok_json(response)

    transformed = parsed.get("data", parsed) if isinstance(parsed, dict) else parsed
    if not isinstance(transformed, list) or not all(isinstance(row, dict) for row in transformed):
        raise GrokError("Grok transform response is not a list of row objects")
    columns = list(transformed[0].keys()) if transformed else []

    return {
        "transformedData": transformed,
        "columns": columns,
        "reasoning": parsed.get("reasoning", "No reasoning provided") if isinstance(parsed, dict) else "No reasoning provided",
        "columnRoles": [r["role"] for r in detect_column_roles(columns)],
    }


def grok_generate_config(csv_chunk, file_size: int, instructions: str | None = None,
                         reasoning_enabled: bool = False):
    example = {
        "operations": [
            {"operation": "rename", "old_name": "Old Name", "new_name": "New Name"},
            {"operation": "pivot_longer", "cols": ["Jan", "Feb", "Mar"], "names_to": "Month", "values_to": "Sales"},
        ]
    }
    output_format = {"config": example}
    if reasoning_enabled:
        output_format = {"reasoning": "how the configuration was generated", "config": example}

    prompt = (
        f"Context: You are processing a large CSV file of {round((file_size or 0) / 1024)} KB.\n"
        f"Sample Data (first 15 records):\n{json.dumps(csv_chunk, indent=2)}\n\n"
        f"Instructions: {instructions or DEFAULT_CONFIG_INSTRUCTIONS}\n\n"
        f"Output Format: {json.dumps(output_format)}"
    )
    response = call_grok(prompt, 2000, reasoning_enabled)
    parsed = parse_grok_json(response)
    if not isinstance(parsed, dict):
        raise GrokError("Grok configuration response is not a JSON object")

    cfg = parsed
    if isinstance(parsed.get("config"), dict):
        cfg = parsed["config"]
    elif isinstance(parsed.get("data"), dict) and isinstance(parsed["data"].get("config"), dict):
        cfg = parsed["data"]["config"]

    return {"config": cfg, "reasoning": parsed.get("reasoning", "No reasoning provided")}
