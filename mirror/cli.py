"""
mirror/cli.py
Command-line interface for the Reasoning Mirror rule layer.
Instructor and developer tooling: every command runs offline.

USAGE:
  python -m mirror.cli classify --text "some message"
  python -m mirror.cli coverage --file conversation.json
  python -m mirror.cli resolve  --roster roster.json --file paper.txt
  python -m mirror.cli report   --progress progress.json --through-week 8
  python -m mirror.cli serve    --port 8766

EXAMPLES:
  # Check which week/student an extracted paper resolves to
  python -m mirror.cli resolve --roster roster.json --file week3_paper.txt

  # Class summary with incident counts, as hashed JSON
  python -m mirror.cli report --progress class.json --output summary.json

  # Write mirror_config.json with defaults
  python -m mirror.cli init-config
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from mirror.config import ensure_config, gaming_thresholds, load_config, progress_settings
from mirror.detectors.coverage_detector import detect_areas, merge_coverage, missing_areas
from mirror.detectors.crisis_detector import classify
from mirror.detectors.gaming_detector import score
from mirror.exporters.sqlite_exporter import incident_counts
from mirror.knowledge.course_tables import load_week_table
from mirror.models.record import AreaCoverage
from mirror.progress.tracker import progress_from_dict
from mirror.report import build_report, export_to_json
from mirror.resolver.document_resolver import can_auto_confirm, resolve, roster_from_dicts

logger = logging.getLogger(__name__)

# ANSI colors
GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'
BOLD   = '\033[1m'


def _read_text(args) -> str:
    if getattr(args, 'text', None):
        return args.text
    if getattr(args, 'file', None):
        return Path(args.file).read_text(encoding='utf-8')
    return sys.stdin.read()


def _load_json(path: Path):
    try:
        return json.loads(Path(path).read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError) as e:
        _print(f"{RED}Error: cannot read {path}: {e}{RESET}")
        sys.exit(1)


# ── COMMANDS ─────────────────────────────────────────────────

def cmd_classify(args, config) -> int:
    result = classify(_read_text(args))
    if result.detected:
        _print(f"{RED}{BOLD}CRISIS{RESET} category={result.category} rule={result.rule}")
        return 2
    _ok("No crisis language detected")
    return 0


def cmd_coverage(args, config) -> int:
    raw = _read_text(args)
    try:
        conversation = json.loads(raw)
    except json.JSONDecodeError:
        conversation = raw
    detected = detect_areas(conversation)
    coverage = merge_coverage(AreaCoverage(), detected)
    for area, hit in detected.items():
        mark = f"{GREEN}✓{RESET}" if hit else f"{YELLOW}·{RESET}"
        _print(f"  {mark} {area}")
    missing = missing_areas(coverage)
    if missing:
        _print(f"\n  Not yet explored: {', '.join(missing)}")
    return 0


def cmd_gaming(args, config) -> int:
    priors = [Path(p).read_text(encoding='utf-8') for p in (args.prior or [])]
    signal = score(_read_text(args), priors, gaming_thresholds(config))
    if not signal.flagged:
        _ok("No gaming signals")
        return 0
    _print(f"{YELLOW}⚠ Flagged{RESET}")
    for reason in signal.reasons:
        _print(f"  • {reason}")
    return 0


def cmd_resolve(args, config) -> int:
    rows   = _load_json(args.roster) if args.roster else []
    table_path = args.week_table or config.get('week_table_path')
    table  = load_week_table(Path(table_path) if table_path else None)
    result = resolve(_read_text(args), roster_from_dicts(rows), table)

    student = result.student.value
    _print(f"Student  : {CYAN}{student.name if student else '-'}{RESET} "
           f"({result.student.confidence}, {result.student.strategy or 'none'})")
    _print(f"Week     : {CYAN}{result.week.value or '-'}{RESET} "
           f"({result.week.confidence}, {result.week.strategy or 'none'}) {result.week.detail}")
    _print(f"Type     : {CYAN}{result.submission_type.value}{RESET} "
           f"({result.submission_type.confidence})")
    for w in result.warnings:
        _print(f"  {YELLOW}⚠ {w}{RESET}")
    if can_auto_confirm(result):
        _ok("Auto-confirm eligible")
    else:
        _step("Needs instructor review")
    return 0


def cmd_report(args, config) -> int:
    settings = progress_settings(config)
    data     = _load_json(args.progress)
    records  = [progress_from_dict(d, settings) for d in (data if isinstance(data, list) else [data])]
    db       = args.incident_db or config.get('incident_db_path')
    counts   = incident_counts(Path(db)) if db else {}
    report   = build_report(records, args.through_week, settings, counts)
    payload  = export_to_json(report)

    if args.output:
        Path(args.output).write_text(payload, encoding='utf-8')
        _ok(f"Report written → {args.output}")
    else:
        _print(payload)

    _print(f"\n  Students : {report.student_count}")
    _print(f"  At risk  : {report.at_risk_count}")
    return 0


def cmd_serve(args, config) -> int:
    from mirror.api import serve
    serve(host=args.host, port=args.port, config=config)
    return 0


def cmd_init_config(args, config) -> int:
    ensure_config(args.project_root)
    _ok(f"Config ready in {args.project_root or Path.cwd()}")
    return 0


def cmd_list_models(args, config) -> int:
    from mirror.llm.ollama_adapter import OllamaAdapter
    adapter = OllamaAdapter(host=config.get('ollama_host', 'http://localhost:11434'))
    models  = adapter.list_available_models()
    if not models:
        _print(f"{YELLOW}No models found. Is Ollama running?{RESET}")
        return 1
    _print(f"\n{BOLD}Available Ollama models:{RESET}")
    for m in models:
        _print(f"  • {m}")
    return 0


# ── PARSER ───────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog        = 'mirror',
        description = 'Reasoning Mirror — Socratic tutor rule layer',
        formatter_class = argparse.RawDescriptionHelpFormatter,
        epilog = """
PRIVACY NOTE:
  Message and document text is never logged or stored.
  Crisis incidents are recorded as category + timestamp only.
        """
    )
    parser.add_argument('--project-root', type=Path, default=None,
                        help='Directory holding mirror_config.json (default: cwd)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    def _text_source(p):
        p.add_argument('--text', '-t', help='Input text (default: read --file or stdin)')
        p.add_argument('--file', '-f', type=Path, help='Read input from a file')

    p = sub.add_parser('classify', help='Run the crisis gate on one message')
    _text_source(p)
    p.set_defaults(func=cmd_classify)

    p = sub.add_parser('coverage', help='Rubric coverage of a conversation (text or JSON messages)')
    _text_source(p)
    p.set_defaults(func=cmd_coverage)

    p = sub.add_parser('gaming', help='Score a message for submission gaming')
    _text_source(p)
    p.add_argument('--prior', nargs='*', type=Path,
                   help="Files holding the student's earlier messages")
    p.set_defaults(func=cmd_gaming)

    p = sub.add_parser('resolve', help='Resolve extracted document text')
    _text_source(p)
    p.add_argument('--roster', '-r', type=Path, help='Roster JSON: [{"id","name","email"}]')
    p.add_argument('--week-table', type=Path, help='Week table JSON override')
    p.set_defaults(func=cmd_resolve)

    p = sub.add_parser('report', help='Class progress summary')
    p.add_argument('--progress', '-p', type=Path, required=True,
                   help='JSON file: one progress record or a list of them')
    p.add_argument('--through-week', type=int, default=None,
                   help='Latest week that has happened (default: last required week)')
    p.add_argument('--incident-db', type=Path, default=None,
                   help='Incident database (default: from config)')
    p.add_argument('--output', '-o', type=Path, default=None,
                   help='Write hashed JSON here instead of stdout')
    p.set_defaults(func=cmd_report)

    p = sub.add_parser('serve', help='Run the HTTP API')
    p.add_argument('--host', default='127.0.0.1', help='Host to bind (default: 127.0.0.1)')
    p.add_argument('--port', type=int, default=8766, help='Port to bind (default: 8766)')
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser('init-config', help='Write mirror_config.json with defaults')
    p.set_defaults(func=cmd_init_config)

    p = sub.add_parser('list-models', help='List locally available Ollama models')
    p.set_defaults(func=cmd_list_models)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    logging.basicConfig(
        level   = logging.DEBUG if args.verbose else logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    config = load_config(args.project_root)
    try:
        return args.func(args, config)
    except ValueError as e:
        _print(f"{RED}Error: {e}{RESET}")
        return 1


# ── PRINT HELPERS ────────────────────────────────────────────

def _step(msg):  _print(f"  {CYAN}→{RESET} {msg}")
def _ok(msg):    _print(f"  {GREEN}✓{RESET} {msg}")
def _print(msg): print(msg)


if __name__ == '__main__':
    sys.exit(main())
