"""
CodeWhisper - Command Line Entry Point

Run with: python -m codewhisper.main analyze src/
          python -m codewhisper.main suggest --language python
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from codewhisper.core import CodeWhisperError, load_config, setup_logging
from codewhisper.engine import BatchItem, CodeWhisperEngine
from codewhisper.parsing.base import EXTENSION_LANGUAGES

logger = logging.getLogger(__name__)


def print_banner(console: Console) -> None:
    """Print the startup banner."""
    console.print(Panel("CodeWhisper\nLocal pattern learning for your code", style="cyan"))


def collect_files(paths: list[Path]) -> list[Path]:
    """Expand directories into source files with a known extension."""
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(sorted(
                p for p in path.rglob("*")
                if p.is_file() and p.suffix.lower() in EXTENSION_LANGUAGES
            ))
        elif path.is_file():
            files.append(path)
        else:
            logger.warning(f"Skipping missing path: {path}")
    return files


def cmd_analyze(engine: CodeWhisperEngine, args: argparse.Namespace, console: Console) -> int:
    items = []
    for path in collect_files(args.paths):
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            console.print(f"[yellow]Cannot read {path}: {e}[/yellow]")
            continue
        items.append(BatchItem(source=source, language=args.language, source_file=str(path)))

    batch = engine.analyze_batch(items)

    table = Table(title="Analysis")
    table.add_column("File")
    table.add_column("Language")
    table.add_column("Candidates", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Partial")
    for result in batch.results:
        table.add_row(
            result.source_file,
            result.language,
            str(result.candidates),
            str(result.new_patterns),
            "yes" if result.partial else "",
        )
    console.print(table)
    for error in batch.errors:
        console.print(f"[red]{error['source_file']}: {error['code']}: {error['message']}[/red]")
    return 1 if batch.errors and not batch.results else 0


def cmd_suggest(engine: CodeWhisperEngine, args: argparse.Namespace, console: Console) -> int:
    suggestions = engine.suggest(
        args.language,
        recent_patterns=args.recent,
        max_results=args.limit,
        confidence_threshold=args.threshold,
    )
    if not suggestions:
        console.print("[dim]No suggestions above the confidence threshold.[/dim]")
        return 0

    table = Table(title=f"Suggestions for {args.language}")
    table.add_column("Pattern")
    table.add_column("Type")
    table.add_column("Score", justify="right")
    table.add_column("Example")
    table.add_column("Why", style="dim")
    for suggestion in suggestions:
        table.add_row(
            suggestion.pattern_id,
            suggestion.pattern_type.value,
            f"{suggestion.adjusted_score:.3f}",
            suggestion.example,
            suggestion.rationale,
        )
    console.print(table)
    return 0


def cmd_feedback(engine: CodeWhisperEngine, args: argparse.Namespace, console: Console) -> int:
    modified = args.modified.read_text(encoding="utf-8") if args.modified else None
    outcome = engine.apply_feedback(
        args.pattern_id,
        args.action,
        reason=args.reason,
        modified_content=modified,
    )
    console.print(
        f"{outcome.pattern_id}: {outcome.action.value}, confidence "
        f"{outcome.previous_confidence:.3f} -> {outcome.confidence:.3f}"
    )
    if outcome.learned_pattern_ids:
        console.print(f"[dim]Learned {len(outcome.learned_pattern_ids)} patterns from modified code[/dim]")
    if outcome.reparse_error:
        console.print(f"[yellow]Modified code not learned: {outcome.reparse_error}[/yellow]")
    return 0


def cmd_decay(engine: CodeWhisperEngine, args: argparse.Namespace, console: Console) -> int:
    report = engine.decay()
    console.print(
        f"Examined {report.examined} patterns: {report.decayed} decayed, {report.retired} retired"
    )
    return 0


def cmd_stats(engine: CodeWhisperEngine, args: argparse.Namespace, console: Console) -> int:
    stats = engine.statistics()
    table = Table(title="Pattern Store")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key in ("total_patterns", "active_patterns", "retired_patterns", "total_sightings",
                "average_confidence"):
        table.add_row(key.replace("_", " "), str(stats[key]))
    feedback = stats["feedback"]
    table.add_row("feedback events", str(feedback["total"]))
    table.add_row("acceptance rate", f"{feedback['acceptance_rate']:.1%}")
    console.print(table)

    if stats["by_type"]:
        types = Table(title="By Type")
        types.add_column("Type")
        types.add_column("Patterns", justify="right")
        for name, count in stats["by_type"].items():
            types.add_row(name, str(count))
        console.print(types)
    return 0


def cmd_export(engine: CodeWhisperEngine, args: argparse.Namespace, console: Console) -> int:
    data = engine.export_data()
    args.output.parent.mkdir(parents=True, exist_ok=True)
    with open(args.output, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    console.print(f"Exported {len(data['patterns'])} patterns to {args.output}")
    return 0


def cmd_import(engine: CodeWhisperEngine, args: argparse.Namespace, console: Console) -> int:
    try:
        with open(args.input, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read {args.input}: {e}[/red]")
        return 1
    if not isinstance(data, dict):
        console.print(f"[red]{args.input} is not a pattern export[/red]")
        return 1
    added = engine.import_data(data, replace=args.replace)
    console.print(f"Imported {added} patterns from {args.input}")
    return 0


COMMANDS = {
    "analyze": cmd_analyze,
    "suggest": cmd_suggest,
    "feedback": cmd_feedback,
    "decay": cmd_decay,
    "stats": cmd_stats,
    "export": cmd_export,
    "import": cmd_import,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="codewhisper", description="Local code pattern learning")
    parser.add_argument("--config", type=Path, default=None, help="Path to a YAML config file")
    parser.add_argument("--quiet", action="store_true", help="Skip the banner")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Learn patterns from files or directories")
    analyze.add_argument("paths", nargs="+", type=Path)
    analyze.add_argument("--language", default=None, help="Override language detection")

    suggest = sub.add_parser("suggest", help="Show ranked suggestions")
    suggest.add_argument("--language", required=True)
    suggest.add_argument("--recent", nargs="*", default=[], help="Recent pattern ids or types")
    suggest.add_argument("--limit", type=int, default=None)
    suggest.add_argument("--threshold", type=float, default=None)

    feedback = sub.add_parser("feedback", help="Record a reaction to a suggestion")
    feedback.add_argument("pattern_id")
    feedback.add_argument("action", choices=["accepted", "rejected", "modified", "ignored"])
    feedback.add_argument("--reason", default=None)
    feedback.add_argument("--modified", type=Path, default=None, help="File with the modified code")

    sub.add_parser("decay", help="Run a forgetting pass")
    sub.add_parser("stats", help="Show store statistics")

    export = sub.add_parser("export", help="Write learned state to a JSON file")
    export.add_argument("output", type=Path)

    imp = sub.add_parser("import", help="Load learned state from a JSON file")
    imp.add_argument("input", type=Path)
    imp.add_argument("--replace", action="store_true", help="Replace instead of merging")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = load_config(args.config)

    log_file = Path(config.logging.log_file) if config.logging.log_file else None
    setup_logging(
        level=config.logging.level,
        log_file=log_file,
        console=config.logging.console,
        json_format=config.logging.json_format,
    )

    console = Console()
    if not args.quiet:
        print_banner(console)

    engine = CodeWhisperEngine(config)
    engine.load_session()
    try:
        return COMMANDS[args.command](engine, args, console)
    except CodeWhisperError as e:
        console.print(f"[red]{e.code}: {e.message}[/red]")
        return 1
    finally:
        engine.close()


if __name__ == "__main__":
    sys.exit(main())
