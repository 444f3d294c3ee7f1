"""CLI interface using typer + rich."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from jobaly.cache.rewrite_cache import RewriteCache
from jobaly.clients.llm_client import LLMClient
from jobaly.config import OVERFLOW_POLICIES, load_config
from jobaly.exceptions import InvalidPackage, TailoringCancelled
from jobaly.lexicon import load_lexicon
from jobaly.models.resume import ContactInfo, ResumeModel
from jobaly.parsers.extract import extract_resume
from jobaly.parsers.job_normalizer import load_job_file
from jobaly.parsers.structure import parse_with_warnings
from jobaly.pipeline import cover_letter
from jobaly.pipeline.match_scorer import MatchScorer, match_label
from jobaly.pipeline.orchestrator import Outcome, TailoringPipeline, build_rewriter
from jobaly.templates.document_patcher import DocumentPatcher
from jobaly.usage.cost_calculator import calculate_cost
from jobaly.usage.models import RunLog
from jobaly.usage.usage_store import UsageStore

app = typer.Typer(
    name="jobaly",
    help="Tailor a resume to a job posting and patch it back into the original document",
    no_args_is_help=True,
)
console = Console()

_OUTCOME_STYLE = {
    Outcome.FULL: "green",
    Outcome.PARTIAL: "yellow",
    Outcome.SYNTHESIZED: "cyan",
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _require(path: Path, what: str) -> None:
    if not path.exists():
        console.print(f"[red]{what} not found: {path}[/red]")
        raise typer.Exit(1)


def _load_resume(path: Path) -> tuple[str, list, ResumeModel, tuple]:
    _require(path, "Resume file")
    config = load_config()
    extracted = extract_resume(path)
    parsed = parse_with_warnings(extracted.text, extracted.markup, lexicon=load_lexicon(config.lexicon_path))
    return extracted.text, extracted.markup, parsed.resume, parsed.warnings


def _scorer(config, lexicon) -> MatchScorer:
    return MatchScorer(
        weights=config.scoring.weights,
        desired_titles=config.scoring.desired_titles,
        min_description_chars=config.scoring.min_description_chars,
        lexicon=lexicon,
    )


@app.command()
def parse(
    resume: Path = typer.Argument(help="Resume file (PDF/DOCX/TXT/MD)"),
    as_json: bool = typer.Option(False, "--json", help="Print the full model as JSON"),
) -> None:
    """Show the structured view of a resume."""
    _, _, model, warnings = _load_resume(resume)
    if as_json:
        console.print_json(model.model_dump_json(exclude={"raw_text"}))
        return

    contact = model.contact
    console.print(Panel(
        f"[bold]{contact.name or '(no name)'}[/bold]\n"
        f"{' | '.join(v for v in (contact.email, contact.phone, contact.location) if v)}\n"
        f"Current title: {model.current_title or '-'}\n"
        f"Experience: {model.years_of_experience if model.years_of_experience is not None else '-'} years",
        title="Contact",
    ))
    for exp in model.experiences:
        dates = " - ".join(d for d in (exp.start_date, "Present" if exp.current else exp.end_date) if d)
        body = "\n".join(f"  - {b}" for b in exp.bullet_points) or "  (no bullets)"
        console.print(f"[bold]{exp.title}[/bold] @ {exp.company} [dim]{dates}[/dim]\n{body}")
    if model.skill_categories:
        console.print("\n[bold]Skills[/bold]")
        for category in model.skill_categories:
            console.print(f"  {category.label}: {category.raw_value}")
    for warning in warnings:
        console.print(f"[yellow]{warning}[/yellow]")


@app.command()
def score(
    resume: Path = typer.Argument(help="Resume file"),
    job: Path = typer.Option(..., "--job", "-j", help="Job posting (YAML/JSON/TXT)"),
) -> None:
    """Score a resume against a job posting."""
    _require(job, "Job file")
    config = load_config()
    _, _, model, _ = _load_resume(resume)
    lexicon = load_lexicon(config.lexicon_path)
    job_model = load_job_file(job, lexicon=lexicon)
    result = _scorer(config, lexicon).score(model, job_model)

    table = Table(title=f"{job_model.title or 'Job'} @ {job_model.company or '-'}")
    table.add_column("Component")
    table.add_column("Score", justify="right")
    table.add_column("Weight", justify="right")
    weights = config.scoring.weights
    for name in ("skills", "experience", "title", "keywords"):
        table.add_row(name, str(getattr(result, name)), f"{getattr(weights, name):.2f}")
    table.add_row("[bold]overall[/bold]", f"[bold]{result.overall}[/bold]", "")
    console.print(table)

    d = result.details
    console.print(
        f"{match_label(result.overall)} | title: {d.title_similarity_label} | "
        f"keywords: {d.keyword_hit_count}/{d.keyword_total} | gap: {d.experience_gap_years:g}y"
    )
    if d.matched_skills:
        console.print(f"[green]Matched:[/green] {', '.join(d.matched_skills)}")
    if d.missing_skills:
        console.print(f"[yellow]Missing:[/yellow] {', '.join(d.missing_skills)}")


@app.command()
def rank(
    resume: Path = typer.Argument(help="Resume file"),
    jobs: list[Path] = typer.Argument(help="Job postings (YAML/JSON/TXT)"),
) -> None:
    """Score a resume against several postings, best match first."""
    for job in jobs:
        _require(job, "Job file")
    config = load_config()
    _, _, model, _ = _load_resume(resume)
    lexicon = load_lexicon(config.lexicon_path)
    ranked = _scorer(config, lexicon).score_many(model, [load_job_file(j, lexicon=lexicon) for j in jobs])

    table = Table(title="Ranked postings")
    table.add_column("#", justify="right")
    table.add_column("Job")
    table.add_column("Company")
    table.add_column("Overall", justify="right")
    table.add_column("Fit")
    for position, (job_model, result) in enumerate(ranked, 1):
        table.add_row(
            str(position), job_model.title or "-", job_model.company or "-",
            str(result.overall), match_label(result.overall),
        )
    console.print(table)


@app.command("cover-letter")
def cover_letter_cmd(
    resume: Path = typer.Argument(help="Resume file"),
    job: Path = typer.Option(..., "--job", "-j", help="Job posting (YAML/JSON/TXT)"),
    brief: bool = typer.Option(False, "--brief", help="Short note instead of the full letter"),
    output: Path = typer.Option(None, "--output", "-o", help="Write the letter to a file"),
) -> None:
    """Write a cover letter for a posting without calling a model."""
    _require(job, "Job file")
    config = load_config()
    _, _, model, _ = _load_resume(resume)
    lexicon = load_lexicon(config.lexicon_path)
    job_model = load_job_file(job, lexicon=lexicon)
    if brief:
        letter = cover_letter.generate_brief(model, job_model)
    else:
        letter = cover_letter.generate(model, job_model, _scorer(config, lexicon).score(model, job_model))

    if output:
        output.write_text(letter + "\n", encoding="utf-8")
        console.print(f"[green]Cover letter written to {output}[/green]")
    else:
        console.print(letter, markup=False, highlight=False)


@app.command()
def tailor(
    resume: Path = typer.Argument(help="Resume file"),
    job: Path = typer.Option(..., "--job", "-j", help="Job posting (YAML/JSON/TXT)"),
    template: Path = typer.Option(None, "--template", "-t", help="Original DOCX/HWPX to patch"),
    output: Path = typer.Option(None, "--output", "-o", help="Output document path"),
    no_rewrite: bool = typer.Option(False, "--no-rewrite", help="Keep original bullets"),
    overflow: str = typer.Option(None, "--overflow", help="Extra bullets: drop | append"),
    name: str = typer.Option(None, "--name", help="Replace the contact name"),
    email: str = typer.Option(None, "--email", help="Replace the contact email"),
    phone: str = typer.Option(None, "--phone", help="Replace the contact phone"),
    location: str = typer.Option(None, "--location", help="Replace the contact location"),
    log_usage: bool = typer.Option(False, "--log-usage", help="Record this run in the usage log"),
) -> None:
    """Tailor a resume to a job and write the resulting document."""
    _require(job, "Job file")
    if template is not None:
        _require(template, "Template")
    if overflow is not None and overflow not in OVERFLOW_POLICIES:
        console.print(f"[red]--overflow must be one of {', '.join(OVERFLOW_POLICIES)}[/red]")
        raise typer.Exit(1)

    config = load_config()
    text, markup, _, _ = _load_resume(resume)
    job_model = load_job_file(job, lexicon=load_lexicon(config.lexicon_path))

    llm = None
    rewriter = None
    if config.rewrite.enabled and not no_rewrite:
        llm = LLMClient(timeout=config.llm.timeout, max_retries=config.llm.max_retries, model=config.llm.model)
        rewriter = build_rewriter(config, llm)
    pipeline = TailoringPipeline.from_config(config, rewriter=rewriter, overflow_policy=overflow)

    package_bytes = template.read_bytes() if template is not None else None
    contact = ContactInfo(name=name, email=email, phone=phone, location=location)

    store = UsageStore() if log_usage else None
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Tailoring...", total=None)

            def on_phase(phase: str, detail: str) -> None:
                progress.update(task, description=f"{phase}: {detail}")

            result = asyncio.run(
                pipeline.run(
                    text,
                    job_model,
                    markup=markup,
                    package_bytes=package_bytes,
                    contact=contact,
                    on_phase=on_phase,
                )
            )
    except (InvalidPackage, TailoringCancelled) as e:
        if store is not None:
            store.save_log(RunLog(
                job_title=job_model.title,
                company_name=job_model.company,
                success=False,
                error_message=str(e),
            ))
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if output is None:
        suffix = template.suffix if template is not None and result.document.path == "patched" else ".docx"
        stem = f"{resume.stem}_{job_model.company or 'tailored'}".replace(" ", "_")
        output = Path("output") / f"{stem}{suffix}"
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(result.document.package)

    style = _OUTCOME_STYLE[result.outcome]
    console.print(Panel(
        f"Match: [bold]{result.score.overall}[/bold] ({match_label(result.score.overall)})\n"
        f"Outcome: [bold {style}]{result.outcome.value}[/bold {style}]"
        + (f" ({result.document.reason})" if result.outcome is Outcome.SYNTHESIZED else "")
        + f"\nKeywords: {', '.join(result.plan.keywords) or '-'}"
        + f"\nTime: {result.elapsed_seconds:.1f}s",
        title="Tailoring result",
    ))
    console.print(f"[green]Saved: {output}[/green]")
    if result.warnings:
        console.print("\n[yellow]Warnings:[/yellow]")
        for warning in result.warnings:
            console.print(f"  - {warning}")

    if store is not None:
        tokens = llm.get_token_summary() if llm is not None else {"input": 0, "output": 0, "calls": []}
        store.save_log(RunLog(
            job_title=job_model.title,
            company_name=job_model.company,
            overall_score=result.score.overall,
            outcome=result.outcome.value,
            warning_count=len(result.warnings),
            degraded=result.plan.degraded,
            elapsed_seconds=result.elapsed_seconds,
            total_input_tokens=tokens["input"],
            total_output_tokens=tokens["output"],
            estimated_cost_usd=calculate_cost(tokens["calls"]),
        ))


@app.command()
def anchors(
    template: Path = typer.Argument(help="DOCX/HWPX document"),
    resume: Path = typer.Option(..., "--resume", "-r", help="Resume whose values to look for"),
) -> None:
    """List the anchors the patcher can locate in a document."""
    _require(template, "Template")
    config = load_config()
    _, _, model, _ = _load_resume(resume)
    patcher = DocumentPatcher(
        terminal_sections=config.patch.terminal_sections,
        placeholders=config.patch.placeholders,
        lexicon=load_lexicon(config.lexicon_path),
    )
    try:
        found = patcher.locate(template.read_bytes(), model)
    except InvalidPackage as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not found:
        console.print("[yellow]No anchors found; tailoring would synthesize a new document.[/yellow]")
        return
    table = Table(title=f"Anchors in {template.name}")
    table.add_column("Kind")
    table.add_column("Key")
    table.add_column("Part")
    table.add_column("Paragraph", justify="right")
    for anchor in found:
        table.add_row(anchor.kind.value, anchor.key, anchor.part, str(anchor.start))
    console.print(table)


@app.command()
def usage(
    limit: int = typer.Option(10, "--limit", "-n", help="Recent runs to list"),
) -> None:
    """Print the usage summary and recent runs."""
    store = UsageStore()
    summary = store.get_summary()
    outcomes = summary["outcomes"]
    avg = summary["avg_overall_score"]
    console.print(Panel(
        f"Runs: {summary['total_runs']} (success {summary['success_rate']:.0f}%)\n"
        f"Outcomes: full {outcomes['full']} | partial {outcomes['partial']} | synthesized {outcomes['synthesized']}\n"
        f"Average match: {avg if avg is not None else '-'}\n"
        f"Tokens: {summary['total_input_tokens']} in / {summary['total_output_tokens']} out\n"
        f"Estimated cost: ${summary['total_cost_usd']:.4f}",
        title="Usage",
    ))
    for log in store.get_logs(limit=limit):
        status = log.outcome or ("error" if not log.success else "-")
        console.print(
            f"  {log.timestamp:%Y-%m-%d %H:%M} {log.company_name or '-'} / {log.job_title or '-'}"
            f" score={log.overall_score if log.overall_score is not None else '-'} {status}"
        )


@app.command("cache-clear")
def cache_clear() -> None:
    """Clear the rewrite cache."""
    config = load_config()
    cache = RewriteCache(config.cache.resolved_db_path, ttl_days=config.cache.ttl_days)
    removed = cache.clear()
    console.print(f"[green]Removed {removed} cached rewrites.[/green]")


if __name__ == "__main__":
    app()
