"""The three model-backed lookups behind the HTTP endpoints.

Each lookup is a ``ReferenceTask``: which request field it reads, which prompt
it sends, whether Google Search grounding is on, which top-level key the
answer must carry, and how the parsed answer is filtered.
"""

from dataclasses import dataclass
from typing import Callable

from errors import GenerationError, ValidationError
from extractor import extract_json
from log_setup import get_logger
from system_prompt import (
    AGGREGATE_SYSTEM_PROMPT,
    AGGREGATE_USER_PROMPT,
    IMAGES_SYSTEM_PROMPT,
    IMAGES_USER_PROMPT,
    TERMS_SYSTEM_PROMPT,
    TERMS_USER_PROMPT,
    build_prompt,
)

log = get_logger(__name__)

MAX_URLS_PER_RESULT = 6


def _is_image_url(url):
    return isinstance(url, str) and url.startswith("http")


def keep_terms(parsed):
    terms = parsed.get("terms") if isinstance(parsed, dict) else None
    if not isinstance(terms, list):
        terms = []
    if not terms:
        raise GenerationError("No terms generated")
    log.info("terms_generated", count=len(terms))
    return {"terms": terms}


def keep_image_urls(parsed):
    urls = parsed.get("imageUrls") if isinstance(parsed, dict) else None
    if not isinstance(urls, list):
        urls = []
    image_urls = [url for url in urls if _is_image_url(url)]
    log.info("images_found", count=len(image_urls), dropped=len(urls) - len(image_urls))
    return {"imageUrls": image_urls}


def keep_results(parsed):
    raw_results = parsed.get("results") if isinstance(parsed, dict) else None
    if not isinstance(raw_results, list):
        raw_results = []

    results = []
    for index, item in enumerate(raw_results):
        if not isinstance(item, dict):
            item = {}
        term = item.get("term").strip() if isinstance(item.get("term"), str) else ""
        description = (
            item.get("description").strip() if isinstance(item.get("description"), str) else ""
        )
        urls = item.get("imageUrls")
        if not isinstance(urls, list):
            urls = []
        urls = [url for url in urls if _is_image_url(url)][:MAX_URLS_PER_RESULT]

        if not term or not urls:
            log.info("result_skipped", index=index, reason="no term" if not term else "no images")
            continue
        results.append({
            "term": term,
            "description": description,
            "imageUrls": urls,
            "sources": list(urls),
        })

    if not results:
        raise GenerationError("No valid image results were returned")
    log.info(
        "results_collected",
        terms=len(results),
        images=sum(len(r["imageUrls"]) for r in results),
    )
    return {"results": results}


@dataclass(frozen=True)
class ReferenceTask:
    name: str
    input_field: str
    required_key: str
    system_prompt: str
    user_prompt: str
    postprocess: Callable
    use_web_search: bool = False
    json_output: bool = False


GENERATE_TERMS = ReferenceTask(
    name="generate-terms",
    input_field="query",
    required_key="terms",
    system_prompt=TERMS_SYSTEM_PROMPT,
    user_prompt=TERMS_USER_PROMPT,
    postprocess=keep_terms,
    json_output=True,
)

SEARCH_IMAGES = ReferenceTask(
    name="search-images",
    input_field="term",
    required_key="imageUrls",
    system_prompt=IMAGES_SYSTEM_PROMPT,
    user_prompt=IMAGES_USER_PROMPT,
    postprocess=keep_image_urls,
    use_web_search=True,
)

SEARCH_AGGREGATE = ReferenceTask(
    name="search",
    input_field="query",
    required_key="results",
    system_prompt=AGGREGATE_SYSTEM_PROMPT,
    user_prompt=AGGREGATE_USER_PROMPT,
    postprocess=keep_results,
    use_web_search=True,
)


def read_input(task, payload):
    value = payload.get(task.input_field) if isinstance(payload, dict) else None
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Invalid {task.input_field}")
    return value


def run_task(task, payload, gateway):
    """Validate ``payload``, call the model once and return the filtered body."""
    gateway.require_api_key()
    value = read_input(task, payload)
    log.info("task_started", task=task.name, **{task.input_field: value})

    prompt = build_prompt(task.system_prompt, task.user_prompt, **{task.input_field: value})
    text = gateway.complete(
        prompt, use_web_search=task.use_web_search, json_output=task.json_output,
    )
    parsed = extract_json(
        text, task.required_key, source=gateway.model_for(task.use_web_search),
    )
    return task.postprocess(parsed)


def generate_terms(query, gateway):
    return run_task(GENERATE_TERMS, {"query": query}, gateway)["terms"]


def search_images(term, gateway):
    return run_task(SEARCH_IMAGES, {"term": term}, gateway)["imageUrls"]


def search_references(query, gateway):
    return run_task(SEARCH_AGGREGATE, {"query": query}, gateway)["results"]
