"""Command-line interface for TrialScope."""

import asyncio
import json
import logging
from pathlib import Path

import click

from trialscope.config import get_settings
from trialscope.data_sources.base_client import DataSourceError
from trialscope.data_sources.clinical_trials import ClinicalTrialsClient
from trialscope.services.analytics import AnalyticsService
from trialscope.services.query_translator import FilterContext, TrialQueryError
from trialscope.services.trials import TrialsService


async def _walk_pages(context: FilterContext, pages: int) -> list[dict]:
    """Fetch pages 1..`pages` in order, stopping when the cursor chain ends."""
    async with ClinicalTrialsClient() as client:
        service = TrialsService.create(client)
        results = []
        for page in range(1, pages + 1):
            result = await service.get_trials(context, page=page)
            results.append(result.model_dump(mode="json"))
            if not result.has_next_page:
                break
        return results


async def _show(nct_id: str) -> dict:
    async with ClinicalTrialsClient() as client:
        trial = await TrialsService.create(client).get_trial(nct_id)
        return trial.model_dump(mode="json")


async def _analytics(kind: str) -> dict:
    async with ClinicalTrialsClient() as client:
        service = AnalyticsService(client, TrialsService.create(client))
        if kind == "distribution":
            return (await service.get_phase_distribution()).model_dump()
        method = {
            "countries": service.get_country_analytics,
            "statuses": service.get_status_analytics,
            "phases": service.get_phase_analytics,
        }[kind]
        result = await method()
        return {
            "data": [row.model_dump() for row in result.data],
            "errors": result.errors,
            "fallback": result.fallback,
        }


def _run(coro):
    try:
        return asyncio.run(coro)
    except TrialQueryError as e:
        raise click.ClickException(f"{e.code}: {e.message}")
    except DataSourceError as e:
        raise click.ClickException(str(e))


def _emit(payload, output: str | None) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if output:
        Path(output).write_text(text)
        click.echo(f"Results saved to: {output}")
    else:
        click.echo(text)


@click.group()
@click.version_option(package_name="trialscope")
@click.option("--log-level", default=None, help="Override TRIALSCOPE_LOG_LEVEL")
def main(log_level: str | None):
    """TrialScope: search and analyze ClinicalTrials.gov studies."""
    logging.basicConfig(
        level=(log_level or get_settings().log_level).upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("-t", "--term", help="Free-text search term")
@click.option("-c", "--condition", multiple=True, help="Condition (repeatable)")
@click.option("--country", multiple=True, help="Country (repeatable)")
@click.option("-s", "--status", help="Overall status, e.g. RECRUITING")
@click.option("-p", "--phase", help='Phase, e.g. "Phase 2", "N/A", "Multi-Phase"')
@click.option(
    "-l", "--limit", default=10, show_default=True, type=click.IntRange(min=1),
    help="Page size (at most 100)",
)
@click.option(
    "--pages", default=1, show_default=True, help="Walk this many pages in order"
)
@click.option("-o", "--output", type=click.Path(), help="Output file path (JSON)")
def search(term, condition, country, status, phase, limit, pages, output):
    """Search trials, following the cursor chain for --pages pages."""
    try:
        context = FilterContext(
            search_term=term,
            conditions=condition,
            countries=country,
            status=status,
            phase=phase,
            page_size=limit,
        )
    except TrialQueryError as e:
        raise click.BadParameter(e.message)

    results = _run(_walk_pages(context, pages))
    if output:
        _emit(results, output)
        return

    for result in results:
        total = result["total"] if result["total"] is not None else "?"
        suffix = "+" if result["total_is_lower_bound"] else ""
        click.echo(f"Page {result['page']}/{result['total_pages']} (total {total}{suffix})")
        for trial in result["trials"]:
            click.echo(f"  {trial['nct_id']}  [{trial['phase']}] {trial['title']}")


@main.command()
@click.argument("nct_id")
@click.option("-o", "--output", type=click.Path(), help="Output file path (JSON)")
def show(nct_id: str, output: str | None):
    """Show one trial by NCT ID."""
    _emit(_run(_show(nct_id)), output)


@main.command()
@click.argument(
    "kind", type=click.Choice(["countries", "statuses", "phases", "distribution"])
)
@click.option("-o", "--output", type=click.Path(), help="Output file path (JSON)")
def analytics(kind: str, output: str | None):
    """Aggregate breakdowns across the registry."""
    _emit(_run(_analytics(kind)), output)


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True)
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: str, port: int, reload: bool):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("trialscope.api.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
