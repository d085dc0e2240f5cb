import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from app.backend.process import run_quick_export, write_json_output
from populator.config import get_settings
from populator.diagnostics import build_codification_report
from populator.errors import PopulationError
from populator.ir import DataItem, parse_items
from populator.logger import set_level
from populator.template.populator import default_category_config


def load_items_file(path: str) -> List[DataItem]:
    items_path = Path(path).expanduser()
    if not items_path.is_file():
        raise FileNotFoundError(f"items file not found: {path}")
    return parse_items(json.loads(items_path.read_text(encoding="utf-8")))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="template-populator",
        description="Fill <placeholder> cells in a spreadsheet template with codified data items.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --verbose is accepted before or after the sub-command
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--verbose", action="store_true", default=argparse.SUPPRESS, help="Enable debug logging.")

    populate = subparsers.add_parser("populate", parents=[common], help="Populate a template and write the result.")
    populate.add_argument("--items", required=True, help="JSON file with the data items.")
    source = populate.add_mutually_exclusive_group(required=True)
    source.add_argument("--template", help="Path to the .xlsx/.xlsm template.")
    source.add_argument("--template-url", help="URL to download the template from.")
    populate.add_argument(
        "--output-dir",
        default=None,
        help="Directory for the populated file (default: OUTPUT_DIR setting).",
    )
    populate.add_argument("--document-name", default=None, help="Document part of the output filename.")
    populate.add_argument("--template-name", default=None, help="Template part of the output filename.")
    populate.add_argument("--stats-json", default=None, help="Also write the population report to this JSON file.")

    diagnose = subparsers.add_parser("diagnose", parents=[common], help="Print a codification diagnostics report.")
    diagnose.add_argument("--items", required=True, help="JSON file with the data items.")
    diagnose.add_argument("--template", default=None, help="Optional template to compare categories against.")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _run_populate(args: argparse.Namespace) -> int:
    items = load_items_file(args.items)
    template_bytes = None
    template_name = args.template_name
    if args.template:
        template_path = Path(args.template).expanduser()
        if not template_path.is_file():
            print(f"[error] template not found: {args.template}")
            return 1
        template_bytes = template_path.read_bytes()
        template_name = template_name or template_path.stem

    result = asyncio.run(
        run_quick_export(
            items,
            template_bytes=template_bytes,
            template_url=args.template_url,
            document_name=args.document_name,
            template_name=template_name,
            output_dir=args.output_dir or get_settings().OUTPUT_DIR,
            config=default_category_config(),
        )
    )
    stats = result.population.stats.to_dict()
    print("Output:", result.output_path)
    print("Stats:", json.dumps(stats))
    if result.population.unmatched_placeholders:
        print("Unmatched:", ", ".join(result.population.unmatched_placeholders))
    if args.stats_json:
        print("JSON:", write_json_output(result.to_dict(), args.stats_json))
    return 0


def _run_diagnose(args: argparse.Namespace) -> int:
    items = load_items_file(args.items)
    template_bytes = Path(args.template).expanduser().read_bytes() if args.template else None
    report = build_codification_report(items, template_bytes=template_bytes, config=default_category_config())
    print(json.dumps(report, ensure_ascii=False, indent=2, default=str))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    set_level("DEBUG" if args.verbose else get_settings().LOG_LEVEL)
    try:
        if args.command == "populate":
            return _run_populate(args)
        return _run_diagnose(args)
    except (PopulationError, FileNotFoundError, ValueError) as exc:
        print(f"[error] {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
