"""AdScope - Competitive Ad Intelligence

Simple CLI for running scrape jobs and competitor analysis workflows.
"""

import argparse
import asyncio
import json

from adscope.core.service import AdScopeService
from adscope.errors import AdScopeError
from adscope.models.records import Job, Workflow
from adscope.services import streaming


async def run_job(query: str, pages: list[str], country: str | None, limit: int | None):
    """Resolve one or more pages and print the ads found."""
    print(f"Scrape query: {query}")
    print("-" * 50)

    service = AdScopeService()
    handle = await service.create_job(query, pages, country=country, limit=limit)
    job = await _follow(service.get_job, handle, streaming.job_status)

    if job.error:
        print(f"\n[!] Error: {job.error}")
        return 1

    print(f"\n[*] Job Complete! {len(job.results)} ads")
    for item in job.page_results:
        status = f"{item.found_count} ads via {item.source_tag}" if item.error is None else item.error
        print(f"  - {item.page_identifier}: {status}")
    return 0


async def run_workflow(urls: list[str]):
    """Analyze your page against two competitors."""
    print("Competitor analysis:")
    for label, url in zip(("You", "Competitor 1", "Competitor 2"), urls):
        print(f"  {label}: {url}")
    print("-" * 50)

    service = AdScopeService()
    handle = await service.create_workflow(*urls)
    workflow = await _follow(service.get_workflow, handle, streaming.workflow_status)

    print(f"\n[*] Workflow {workflow.status.value}")
    for slot, page in workflow.pages.items():
        found = page.data.found_count if page.data else 0
        print(f"  {slot}: {page.status.value} ({found} ads){' - ' + page.error if page.error else ''}")

    if workflow.synthesis.data:
        print(f"\n{'='*50}")
        print(f"ANALYSIS ({workflow.synthesis.data.get('provider')}):")
        print(f"{'='*50}")
        print(json.dumps(workflow.synthesis.data, indent=2))
    elif workflow.synthesis.error:
        print(f"\n[!] Analysis failed: {workflow.synthesis.error}")
    return 0 if workflow.status.value == "completed" else 1


async def _follow(fetch, handle, to_event) -> Job | Workflow:
    async for event in streaming.watch(lambda: fetch(handle.id), to_event, interval_seconds=0.5):
        progress = event.data.get("progress", {})
        message = progress.get("message")
        if message:
            print(f"[~] {progress.get('percentage', 0):>3}% {message}")
    await handle.task
    return await fetch(handle.id)


def main():
    parser = argparse.ArgumentParser(description="AdScope Competitive Ad Intelligence")
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--query", "-q", help="Search query (page name) for a scrape job")
    mode.add_argument("--workflow", "-w", nargs=3, metavar="URL", help="Your page URL and two competitor URLs")
    parser.add_argument("--page", "-p", action="append", default=[], help="Page URL or name to resolve (repeatable)")
    parser.add_argument("--country", "-c", help="Ad delivery country (default: from config)")
    parser.add_argument("--limit", "-l", type=int, help="Max ads per page (default: from config)")

    args = parser.parse_args()

    try:
        if args.workflow:
            code = asyncio.run(run_workflow(args.workflow))
        else:
            code = asyncio.run(run_job(args.query, args.page, args.country, args.limit))
    except AdScopeError as exc:
        print(f"\n[!] Error: {exc}")
        code = 1
    except ValueError as exc:
        parser.error(str(exc))
    raise SystemExit(code)


if __name__ == "__main__":
    main()
