"""Command-line interface for the scientific query pipeline."""

import asyncio
import json
import logging
from pathlib import Path

import click

from scientific_query.config import get_settings
from scientific_query.pipeline.service import (
    ArticleNotFound,
    InvalidRequest,
    ScientificQueryService,
)


def _run(coro_factory):
    """Run ``coro_factory(service)`` with a service that is closed afterwards."""

    async def runner():
        async with ScientificQueryService() as service:
            return await coro_factory(service)

    try:
        return asyncio.run(runner())
    except (InvalidRequest, ArticleNotFound) as e:
        raise click.ClickException(str(e)) from e


def _save(output: str | None, data: dict) -> None:
    if output:
        Path(output).write_text(json.dumps(data, indent=2, ensure_ascii=False))
        click.echo(f"\nResults saved to: {output}")


@click.group()
@click.version_option(package_name="scientific-query")
def main():
    """Scientific query: ranked, analyzed PubMed evidence for clinical questions."""
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("question")
@click.option("-s", "--strategy", help="PubMed search expression to use instead of generating one")
@click.option("--no-ai", is_flag=True, help="Skip every LLM stage")
@click.option("--synthesis", is_flag=True, help="Also synthesize the analyzed articles")
@click.option("-o", "--output", type=click.Path(), help="Output file path (JSON)")
def query(question: str, strategy: str | None, no_ai: bool, synthesis: bool, output: str | None):
    """Run the full pipeline for a clinical QUESTION."""
    payload = {"question": question, "strategy": strategy, "useAI": not no_ai}

    async def work(service: ScientificQueryService) -> dict:
        result = await service.process_query(payload)
        if synthesis and result.get("success") and result.get("articles"):
            analyzed = [a for a in result["articles"] if a.get("analyzed")]
            if analyzed:
                result["synthesis"] = await service.generate_synthesis(
                    {"question": question, "articles": analyzed}
                )
        return result

    result = _run(work)

    if not result.get("success"):
        raise click.ClickException(result.get("message") or "Query failed")

    click.echo(f"Strategy: {result['canonicalStrategy']}")
    if result.get("processAlert"):
        click.echo(f"Alert: {result['processAlert']}")
    stats = result["stats"]
    click.echo(
        f"{stats['initial']} found, {stats['afterFilter']} after filter, "
        f"{stats['analyzed']} analyzed, {stats['failed']} failed, "
        f"{stats['invalid']} invalid ({stats['processingMs']}ms)"
    )
    for i, article in enumerate(result["articles"], 1):
        flag = "*" if article["analyzed"] else " "
        click.echo(f" {flag}{i:>3}. [{article['priorityScore']:>3}] {article['title']} (PMID {article['pmid']})")

    if result.get("synthesis", {}).get("success"):
        click.echo("\nSynthesis generated.")
    _save(output, result)


@main.command()
@click.option("-p", "--pmid", required=True, help="PubMed identifier")
@click.option("-q", "--question", required=True, help="Clinical question")
@click.option("-o", "--output", type=click.Path(), help="Output file path (JSON)")
def analyze(pmid: str, question: str, output: str | None):
    """Analyze a single article against a clinical question."""
    result = _run(lambda s: s.analyze_article({"pmid": pmid, "question": question}))
    if not result.get("success"):
        raise click.ClickException(result.get("message") or "Analysis failed")
    click.echo(result["article"]["secondaryAnalysis"])
    _save(output, result)


@main.command()
@click.option(
    "-i", "--input", "input_path", required=True, type=click.Path(exists=True),
    help="JSON file with a list of analyzed articles (or a query result)",
)
@click.option("-q", "--question", required=True, help="Clinical question")
@click.option("-o", "--output", type=click.Path(), help="Output file path (JSON)")
def synthesize(input_path: str, question: str, output: str | None):
    """Synthesize the evidence across previously analyzed articles."""
    data = json.loads(Path(input_path).read_text())
    articles = data.get("articles", []) if isinstance(data, dict) else data
    result = _run(lambda s: s.generate_synthesis({"question": question, "articles": articles}))
    if not result.get("success"):
        raise click.ClickException(result.get("message") or "Synthesis failed")
    click.echo(result["synthesis"])
    _save(output, result)


@main.command()
@click.argument("term")
@click.option("-n", "--max-results", default=10, show_default=True, help="Number of articles")
@click.option("-o", "--output", type=click.Path(), help="Output file path (JSON)")
def search(term: str, max_results: int, output: str | None):
    """Search PubMed for TERM without any LLM stage."""
    result = _run(lambda s: s.search_articles({"query": term, "maxResults": max_results}))
    if not result.get("success"):
        raise click.ClickException(result.get("message") or "Search failed")
    click.echo(f"{result['count']} articles")
    for i, article in enumerate(result["results"], 1):
        click.echo(f"  {i}. {article['title']} ({article.get('year') or 'n.d.'}, PMID {article['pmid']})")
    _save(output, result)


if __name__ == "__main__":
    main()
