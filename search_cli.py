"""Run a reference search from the terminal.

    python search_cli.py "mistborn era 2"
    python search_cli.py --server http://127.0.0.1:5001 "fantasy tavern"
    python search_cli.py --aggregate "steampunk airship"
"""

import argparse
import json
import sys

import requests

from config import Settings
from errors import RefMonsterError
from gateway import ModelGateway
from log_setup import setup_logging
from orchestrator import COMPLETED, ACTIVE, SearchFailed, SearchOrchestrator
from references import generate_terms, search_images, search_references

STATUS_MARKS = {COMPLETED: "[x]", ACTIVE: "[~]"}


class LocalClient:
    """Calls the model directly, in-process."""

    def __init__(self, gateway):
        self.gateway = gateway

    def generate_terms(self, query):
        return generate_terms(query, self.gateway)

    def search_images(self, term):
        return search_images(term, self.gateway)

    def search(self, query):
        return search_references(query, self.gateway)


class HttpClient:
    """Talks to a running RefMonster server over its JSON endpoints."""

    def __init__(self, base_url, session=None, timeout=None):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _post(self, path, body):
        res = self.session.post(self.base_url + path, json=body, timeout=self.timeout)
        try:
            data = res.json()
        except ValueError:
            data = {}
        if not res.ok or data.get("error"):
            raise requests.HTTPError(data.get("error") or f"HTTP {res.status_code}", response=res)
        return data

    def generate_terms(self, query):
        return self._post("/api/generate-terms", {"query": query}).get("terms") or []

    def search_images(self, term):
        return self._post("/api/search-images", {"term": term}).get("imageUrls") or []

    def search(self, query):
        return self._post("/api/search", {"query": query}).get("results") or []


def render_checklist(items, out):
    for item in items:
        mark = STATUS_MARKS.get(item["status"], "[ ]")
        print(f"  {mark} {item['label']}", file=out)


def render_results(results, out):
    total = sum(len(r["imageUrls"]) for r in results)
    print(f"\nReference Images ({total})", file=out)
    for result in results:
        print(f"\n{result['term']}", file=out)
        if result.get("description"):
            print(f"  {result['description']}", file=out)
        for url in result["imageUrls"]:
            print(f"  {url}", file=out)


def make_printer(out):
    def on_event(event, orchestrator):
        if event == "checklist":
            print("", file=out)
            render_checklist(orchestrator.checklist.snapshot(), out)
        elif event == "term_images":
            found = len(orchestrator.term_images)
            print(f"  ... images for {found}/{len(orchestrator.terms)} terms", file=out)
    return on_event


def build_parser():
    parser = argparse.ArgumentParser(description="AI-powered art reference search")
    parser.add_argument("query", help="art reference query, e.g. 'mistborn era 2'")
    parser.add_argument("--server", help="base URL of a running RefMonster server")
    parser.add_argument("--aggregate", action="store_true",
                        help="use the single-call search endpoint")
    parser.add_argument("--workers", type=int, help="concurrent image lookups")
    parser.add_argument("--json", action="store_true", help="print results as JSON")
    return parser


def main(argv=None, client=None, out=None):
    out = out or sys.stdout
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_json)

    if client is None:
        client = HttpClient(args.server) if args.server else LocalClient(ModelGateway(settings))

    try:
        if args.aggregate:
            results = client.search(args.query)
        else:
            orchestrator = SearchOrchestrator(
                client,
                max_workers=args.workers or settings.max_concurrent_lookups,
                pauses_ms={},
            )
            if not args.json:
                orchestrator.subscribe(make_printer(out))
            results = orchestrator.run(args.query) or []
    except (SearchFailed, RefMonsterError, requests.RequestException) as e:
        print(f"Search failed: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps({"results": results}, indent=2), file=out)
    else:
        render_results(results, out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
