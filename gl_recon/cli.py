from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from gl_recon import __version__ as TOOL_VERSION
from gl_recon.config import (
    DEFAULT_CONFIG_NAME,
    OUTPUT_STAMP_ENV_VAR,
    ConfigError,
    default_config,
    load_config,
    merge_synonyms,
    resolve_config_path,
)
from gl_recon.contracts import ContractError, build_contract, build_run_summary, load_document
from gl_recon.importer import (
    LedgerImportError,
    build_import_metadata,
    import_file,
    load_account_directory,
    summarize_entries,
)
from gl_recon.pipeline.dates import parse_strict_date
from gl_recon.pipeline.shared import LedgerEntry
from gl_recon.recon import (
    JOURNAL_STATUSES,
    Allocation,
    JournalInstruction,
    allocate,
    compute_balances,
    create_journal_fix,
    filter_entries,
    filter_instructions,
    journal_export_frame,
    monthly_activity,
    open_items,
    set_journal_status,
    site_balance_frame,
    site_balances,
    state_from_payload,
    state_to_payload,
)
from gl_recon.review import SiteOverrideLog, apply_overrides, review_queue
from gl_recon.workbook import write_workbook

SUPPORTED_INPUT_FORMATS = {".csv", ".tsv", ".txt", ".xlsx", ".xlsm", ".xls", ".ods"}

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_OPEN_REVIEW = 3
EXIT_VALIDATE_FAILED = 5

LEDGER_FILE = "ledger.json"
SUMMARY_FILE = "import-summary.json"
WORKBOOK_FILE = "ledger.xlsx"
OVERRIDE_LOG_FILE = "override-log.json"
RECON_STATE_FILE = "recon.json"

logger = logging.getLogger("gl_recon")


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class GlReconArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def timestamp_token() -> str:
    override = os.environ.get(OUTPUT_STAMP_ENV_VAR)
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_dir(input_path: Path) -> Path:
    return Path.cwd() / "gl-recon-output" / f"{input_path.stem}-{timestamp_token()}"


def determine_output_dir(args: argparse.Namespace, input_path: Path) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir(input_path)


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, payload: str) -> None:
    ensure_parent(path)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def safe_output_path(path: Path) -> Path:
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, LedgerImportError):
        return EXIT_VALIDATE_FAILED
    if isinstance(exc, ContractError):
        return EXIT_PARSE_FAILED
    if isinstance(exc, ConfigError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def load_ledger(ledger_path: Path) -> tuple[dict[str, Any], list[LedgerEntry]]:
    if not ledger_path.exists():
        raise CliError(f"Ledger not found: {ledger_path}", EXIT_COMMAND_ERROR)
    payload = load_document(ledger_path, "gl_recon.ledger")
    entries = [LedgerEntry.from_dict(item) for item in payload.get("entries", [])]
    return payload, entries


def recon_state_path(ledger_path: Path) -> Path:
    return ledger_path.parent / RECON_STATE_FILE


def load_recon_state(ledger_path: Path) -> tuple[list[Allocation], list[JournalInstruction]]:
    path = recon_state_path(ledger_path)
    if not path.exists():
        return [], []
    return state_from_payload(load_document(path, "gl_recon.recon_state"))


def load_override_history(ledger_path: Path) -> list[dict[str, Any]]:
    log_path = ledger_path.parent / OVERRIDE_LOG_FILE
    if not log_path.exists():
        return []
    return load_document(log_path, "gl_recon.override_log").get("overrides", [])


def save_recon_state(
    ledger_path: Path,
    entries: list[LedgerEntry],
    allocations: list[Allocation],
    instructions: list[JournalInstruction],
) -> Path:
    path = recon_state_path(ledger_path)
    write_json(path, {"contract": build_contract("gl_recon.recon_state"), **state_to_payload(allocations, instructions)})
    refresh_workbook(ledger_path, entries, allocations=allocations, instructions=instructions)
    return path


def refresh_workbook(
    ledger_path: Path,
    entries: list[LedgerEntry],
    *,
    allocations: list[Allocation] | None = None,
    instructions: list[JournalInstruction] | None = None,
) -> None:
    """Rewrite ledger.xlsx beside the ledger, if import wrote one."""
    workbook_path = ledger_path.parent / WORKBOOK_FILE
    if not workbook_path.exists():
        return
    if allocations is None or instructions is None:
        allocations, instructions = load_recon_state(ledger_path)
    history = [SiteOverrideLog(**item) for item in load_override_history(ledger_path)]
    write_workbook(
        entries,
        workbook_path,
        override_logs=history,
        allocations=allocations,
        journal_instructions=instructions,
    )
    logger.info("Rewrote %s", workbook_path)


def find_entry(entries: list[LedgerEntry], row_id: str) -> LedgerEntry:
    for entry in entries:
        if entry.row_id == row_id:
            return entry
    raise CliError(f"Unknown row id(s): {row_id}", EXIT_COMMAND_ERROR)


def build_ledger_payload(metadata: dict[str, Any], entries: list[LedgerEntry]) -> dict[str, Any]:
    return {
        "contract": build_contract("gl_recon.ledger"),
        "metadata": metadata,
        "entries": [entry.to_dict() for entry in entries],
    }


def render_import_text(summary: dict[str, Any]) -> str:
    run = summary["run_summary"]
    metrics = run["metrics"]
    lines = [
        "gl-recon import",
        f"Input: {run['input_file']}",
        f"Company / GL: {summary['metadata']['company_code']} / {summary['metadata']['gl_account']}",
        f"Rows imported: {metrics['rows']}",
        f"Open for review: {metrics['open_review_rows']}",
        f"Date parse failures: {metrics['date_parse_failures']}",
        f"Net movement (LC): {metrics['net_movement_lc']:.2f}",
    ]
    if metrics["flag_counts"]:
        lines.append("Flags:")
        lines.extend(f"- {reason}: {count}" for reason, count in metrics["flag_counts"].items())
    if run["warnings"]:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in run["warnings"])
    return "\n".join(lines) + "\n"


def render_date_check_text(results: list[dict[str, Any]]) -> str:
    lines = []
    for item in results:
        if item["failed_flag"]:
            lines.append(f"{item['raw']!r}: {item['status']} ({item['format_detected']}) {item['reason']}")
        else:
            lines.append(f"{item['raw']!r}: {item['parsed']} [{item['status']}, {item['format_detected']}]")
    return "\n".join(lines) + "\n"


def render_queue_text(ledger_path: Path, queue: list[LedgerEntry]) -> str:
    lines = [
        "gl-recon queue",
        f"Ledger: {ledger_path}",
        f"Open rows: {len(queue)}",
    ]
    for entry in queue:
        suggestion = f" (suggested {entry.suggested_site})" if entry.suggested_site else ""
        lines.append(
            f"- {entry.row_id} {entry.trans_no or '[no trans]'} {entry.site_final}{suggestion}: "
            + "; ".join(entry.why_flagged)
        )
    return "\n".join(lines) + "\n"


def run_import(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    try:
        suffix = input_path.suffix.lower()
        if suffix not in SUPPORTED_INPUT_FORMATS:
            raise CliError(
                f"Unsupported file type '{suffix or '[missing extension]'}'. "
                f"Supported: {', '.join(sorted(SUPPORTED_INPUT_FORMATS))}",
                EXIT_COMMAND_ERROR,
            )
        if args.sheet_name and args.all_sheets:
            raise CliError("Use either --sheet or --all-sheets, not both.", EXIT_COMMAND_ERROR)

        config_path = resolve_config_path(args.config)
        config = load_config(config_path) if config_path else default_config()
        company_code = args.company or config["company_code"]
        gl_account = args.gl or config["gl_account"]
        if not company_code or not gl_account:
            raise CliError("Please enter Company Code and select a GL Account first.", EXIT_COMMAND_ERROR)

        out_dir = determine_output_dir(args, input_path)
        ledger_path = safe_output_path(out_dir / LEDGER_FILE)
        summary_path = out_dir / SUMMARY_FILE
        workbook_path = out_dir / WORKBOOK_FILE

        directory_path = args.directory or config["account_directory"]
        directory = load_account_directory(Path(directory_path)) if directory_path else []
        meta = build_import_metadata(
            company_code,
            gl_account,
            file_name=input_path.name,
            import_label=args.label or "",
            imported_by=args.imported_by or config["imported_by"],
            gl_account_name=config["gl_account_name"],
        )
        result = import_file(
            input_path,
            meta,
            directory,
            sheet_name=args.sheet_name,
            consolidate_sheets=True if args.all_sheets else None,
            synonyms=merge_synonyms(config["header_synonyms"]),
        )
        entries = result["entries"]
        metrics = summarize_entries(entries)
        metrics["skipped_rows"] = len(result["skipped_rows"])
        metrics["account_directory_items"] = len(directory)

        outputs = {"ledger": str(ledger_path), "summary": str(summary_path)}
        write_json(ledger_path, build_ledger_payload(asdict(meta), entries))
        if args.format == "xlsx":
            write_workbook(entries, workbook_path)
            outputs["workbook"] = str(workbook_path)

        summary = {
            "contract": build_contract("gl_recon.import_summary"),
            "tool": "gl-recon",
            "version": TOOL_VERSION,
            "metadata": asdict(meta),
            "source": result["source"],
            "skipped_rows": result["skipped_rows"],
            "run_summary": build_run_summary(
                command="import",
                input_path=input_path,
                metrics=metrics,
                warnings=result["warnings"],
                outputs=outputs,
            ),
        }
        write_json(summary_path, summary)

        if args.json:
            maybe_emit_json_stdout(summary, True)
        else:
            emit_human(render_import_text(summary).rstrip(), quiet=args.quiet)
            emit_human(f"Ledger: {ledger_path}", quiet=args.quiet)
            if "workbook" in outputs:
                emit_human(f"Workbook: {workbook_path}", quiet=args.quiet)
        return EXIT_OPEN_REVIEW if metrics["open_review_rows"] else EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_check_date(args: argparse.Namespace) -> int:
    results = [asdict(parse_strict_date(value)) for value in args.values]
    if args.json:
        maybe_emit_json_stdout({"contract": build_contract("gl_recon.date_check"), "results": results}, True)
    else:
        print(render_date_check_text(results).rstrip())
    return EXIT_PARSE_FAILED if any(item["failed_flag"] for item in results) else EXIT_SUCCESS


def run_queue(args: argparse.Namespace) -> int:
    ledger_path = Path(args.ledger)
    try:
        _, entries = load_ledger(ledger_path)
        queue = review_queue(
            entries,
            company_code=args.company,
            gl_account=args.gl,
            search_text=args.search,
        )
        if args.json:
            maybe_emit_json_stdout({"ledger": str(ledger_path), "open_rows": [entry.to_dict() for entry in queue]}, True)
        else:
            print(render_queue_text(ledger_path, queue).rstrip())
        return EXIT_OPEN_REVIEW if queue else EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_override(args: argparse.Namespace) -> int:
    ledger_path = Path(args.ledger)
    try:
        payload, entries = load_ledger(ledger_path)
        try:
            updated, logs = apply_overrides(
                entries,
                {args.row_id: args.site},
                changed_by=args.changed_by or "",
                reason=args.reason,
            )
        except KeyError as exc:
            raise CliError(exc.args[0], EXIT_COMMAND_ERROR) from exc
        except ValueError as exc:
            raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc

        log_path = ledger_path.parent / OVERRIDE_LOG_FILE
        history = load_override_history(ledger_path)
        history.extend(log.to_dict() for log in logs)

        write_json(ledger_path, build_ledger_payload(payload.get("metadata", {}), updated))
        write_json(log_path, {"contract": build_contract("gl_recon.override_log"), "overrides": history})

        refresh_workbook(ledger_path, updated)

        log = logs[0]
        if args.json:
            maybe_emit_json_stdout(log.to_dict(), True)
        else:
            print(f"{log.row_id}: {log.old_site} -> {log.new_site}")
            emit_human(f"Override log: {log_path}")
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def render_balances_text(ledger_path: Path, payload: dict[str, Any]) -> str:
    totals = payload["balances"]
    lines = [
        "gl-recon balances",
        f"Ledger: {ledger_path}",
        f"Opening balance: {totals['opening_balance']:.2f}",
        f"Movement: {totals['movement']:.2f}",
        f"Journal fixes: {totals['journal_adjustments']:.2f}",
        f"Closing balance: {totals['closing_balance']:.2f}",
        "Sites:",
    ]
    for site in payload["sites"]:
        lines.append(
            f"- {site['site']}: tenant {site['tenant']:.2f}, landlord {site['landlord']:.2f}, "
            f"bank {site['bank']:.2f}, adjustments {site['adjustments']:.2f}, "
            f"journal {site['journal']:.2f}, reconciled {site['reconciled_total']:.2f}"
        )
    return "\n".join(lines) + "\n"


def run_balances(args: argparse.Namespace) -> int:
    ledger_path = Path(args.ledger)
    try:
        _, entries = load_ledger(ledger_path)
        _, instructions = load_recon_state(ledger_path)
        scope = {"company_code": args.company, "gl_account": args.gl, "sites": args.sites or ()}
        scoped = filter_entries(
            entries,
            month_from=args.month_from,
            month_to=args.month_to,
            search_text=args.search,
            **scope,
        )
        scoped_instructions = filter_instructions(instructions, **scope)
        sites = site_balances(scoped, scoped_instructions)
        payload = {
            "contract": build_contract("gl_recon.balances"),
            "ledger": str(ledger_path),
            "balances": asdict(compute_balances(scoped, scoped_instructions)),
            "sites": [site.to_dict() for site in sites],
            "months": [asdict(month) for month in monthly_activity(scoped)],
        }
        if args.csv:
            csv_path = safe_output_path(Path(args.csv))
            ensure_parent(csv_path)
            site_balance_frame(sites).to_csv(csv_path, index=False)
            emit_human(f"Site balances: {csv_path}")
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            print(render_balances_text(ledger_path, payload).rstrip())
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_allocate(args: argparse.Namespace) -> int:
    ledger_path = Path(args.ledger)
    try:
        _, entries = load_ledger(ledger_path)
        allocations, instructions = load_recon_state(ledger_path)
        credit = find_entry(entries, args.credit_row)
        debit = find_entry(entries, args.debit_row)
        try:
            allocation = allocate(
                credit,
                debit,
                allocations,
                amount=args.amount,
                allocated_by=args.allocated_by or "",
                note=args.note or "",
            )
        except ValueError as exc:
            raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc
        allocations.append(allocation)
        state_path = save_recon_state(ledger_path, entries, allocations, instructions)
        if args.json:
            maybe_emit_json_stdout(allocation.to_dict(), True)
        else:
            print(f"{allocation.credit_row_id} -> {allocation.debit_row_id}: {allocation.allocated_amount:.2f}")
            emit_human(f"Recon state: {state_path}")
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_open_items(args: argparse.Namespace) -> int:
    ledger_path = Path(args.ledger)
    try:
        _, entries = load_ledger(ledger_path)
        allocations, _ = load_recon_state(ledger_path)
        scoped = filter_entries(entries, company_code=args.company, gl_account=args.gl)
        items = open_items(scoped, allocations)
        if args.json:
            maybe_emit_json_stdout(
                {
                    "ledger": str(ledger_path),
                    "open_items": [
                        {
                            "row_id": entry.row_id,
                            "trans_no": entry.trans_no,
                            "direction": entry.direction,
                            "site_final": entry.site_final,
                            "unallocated": amount,
                        }
                        for entry, amount in items
                    ],
                },
                True,
            )
        else:
            lines = ["gl-recon open-items", f"Ledger: {ledger_path}", f"Open items: {len(items)}"]
            lines.extend(
                f"- {entry.row_id} {entry.trans_no or '[no trans]'} {entry.direction} {entry.site_final}: {amount:.2f}"
                for entry, amount in items
            )
            print("\n".join(lines))
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_journal_add(args: argparse.Namespace) -> int:
    ledger_path = Path(args.ledger)
    try:
        _, entries = load_ledger(ledger_path)
        allocations, instructions = load_recon_state(ledger_path)
        entry = find_entry(entries, args.row_id)
        try:
            fixes = create_journal_fix(
                entry,
                args.instruction,
                adjustment_amount=args.amount,
                target_site=args.target_site or "",
            )
        except ValueError as exc:
            raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc
        instructions.extend(fixes)
        state_path = save_recon_state(ledger_path, entries, allocations, instructions)
        if args.json:
            maybe_emit_json_stdout([fix.to_dict() for fix in fixes], True)
        else:
            for fix in fixes:
                print(f"{fix.id} {fix.reference} {fix.site_final}: {fix.adjustment_amount:.2f} [{fix.status}]")
            emit_human(f"Recon state: {state_path}")
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_journal_status(args: argparse.Namespace) -> int:
    ledger_path = Path(args.ledger)
    try:
        _, entries = load_ledger(ledger_path)
        allocations, instructions = load_recon_state(ledger_path)
        try:
            instructions = set_journal_status(instructions, args.instruction_id, args.status)
        except KeyError as exc:
            raise CliError(exc.args[0], EXIT_COMMAND_ERROR) from exc
        save_recon_state(ledger_path, entries, allocations, instructions)
        print(f"{args.instruction_id}: {args.status}")
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_journal_export(args: argparse.Namespace) -> int:
    ledger_path = Path(args.ledger)
    try:
        load_ledger(ledger_path)
        _, instructions = load_recon_state(ledger_path)
        frame = journal_export_frame(instructions)
        if args.out:
            out_path = safe_output_path(Path(args.out))
            ensure_parent(out_path)
            frame.to_csv(out_path, index=False)
            emit_human(f"Journal fixes: {out_path} ({len(frame)} row(s))")
        else:
            sys.stdout.write(frame.to_csv(index=False))
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    payload = default_config()
    payload["header_synonyms"] = {"Posting Date": ["Txn Date"]}
    write_json(config_path, payload)
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = GlReconArgumentParser(prog="gl-recon", description="GL export classification, site review and balance reconciliation.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_ = subparsers.add_parser("import", help="Classify a GL export and write the ledger.")
    import_.add_argument("input", help="Input file path")
    import_.add_argument("--company", help="Company code")
    import_.add_argument("--gl", help="GL account the export belongs to")
    import_.add_argument("--directory", help="Account directory file (CSV/TSV/Excel)")
    import_.add_argument("--config", help=f"Config path (default: {DEFAULT_CONFIG_NAME} if present)")
    import_.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name")
    import_.add_argument("--all-sheets", dest="all_sheets", action="store_true", help="Consolidate compatible workbook sheets")
    import_.add_argument("--label", help="Import label")
    import_.add_argument("--by", dest="imported_by", help="User recorded on the import")
    import_.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    import_.add_argument("--format", choices=["xlsx", "json"], default="xlsx", help="Write ledger.xlsx alongside the JSON ledger")
    import_.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    import_.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    import_.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    check_date = subparsers.add_parser("check-date", help="Show how posting-date values are parsed.")
    check_date.add_argument("values", nargs="+", help="Raw date values")
    check_date.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    queue = subparsers.add_parser("queue", help="List rows waiting for site review.")
    queue.add_argument("ledger", help="ledger.json written by import")
    queue.add_argument("--company", help="Only this company code")
    queue.add_argument("--gl", help="Only this GL account")
    queue.add_argument("--search", help="Match trans no, details or site")
    queue.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    override = subparsers.add_parser("override", help="Set the final site of one ledger row.")
    override.add_argument("ledger", help="ledger.json written by import")
    override.add_argument("row_id", help="Row id from the queue")
    override.add_argument("site", help="Site code to assign")
    override.add_argument("--by", dest="changed_by", help="User making the change")
    override.add_argument("--reason", default="Manual correction in workspace", help="Reason recorded in the override log")
    override.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    balances = subparsers.add_parser("balances", help="Opening, movement and closing balances with a per-site split.")
    balances.add_argument("ledger", help="ledger.json written by import")
    balances.add_argument("--company", help="Only this company code")
    balances.add_argument("--gl", help="Only this GL account")
    balances.add_argument("--site", dest="sites", action="append", help="Only this site (repeatable)")
    balances.add_argument("--from", dest="month_from", help="First transaction month (YYYY-MM)")
    balances.add_argument("--to", dest="month_to", help="Last transaction month (YYYY-MM)")
    balances.add_argument("--search", help="Match trans no, details, offset account name or Ref. 1")
    balances.add_argument("--csv", help="Also write the site balances to this CSV path")
    balances.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    allocate_ = subparsers.add_parser("allocate", help="Allocate a credit row against a debit row.")
    allocate_.add_argument("ledger", help="ledger.json written by import")
    allocate_.add_argument("credit_row", help="Row id of the credit")
    allocate_.add_argument("debit_row", help="Row id of the debit")
    allocate_.add_argument("--amount", type=float, help="Amount to allocate (default: largest possible)")
    allocate_.add_argument("--by", dest="allocated_by", help="User making the allocation")
    allocate_.add_argument("--note", help="Note stored with the allocation")
    allocate_.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    open_items_ = subparsers.add_parser("open-items", help="List rows with an unallocated amount.")
    open_items_.add_argument("ledger", help="ledger.json written by import")
    open_items_.add_argument("--company", help="Only this company code")
    open_items_.add_argument("--gl", help="Only this GL account")
    open_items_.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    journal = subparsers.add_parser("journal", help="Journal fix instructions.")
    journal_subparsers = journal.add_subparsers(dest="journal_command", required=True)
    journal_add = journal_subparsers.add_parser("add", help="Draft a journal fix for one row.")
    journal_add.add_argument("ledger", help="ledger.json written by import")
    journal_add.add_argument("row_id", help="Row id to correct")
    journal_add.add_argument("instruction", help="Instruction text for accounting")
    journal_add.add_argument("--amount", type=float, help="Adjustment amount (default: reverses the row)")
    journal_add.add_argument("--target-site", dest="target_site", help="Site that should carry the amount")
    journal_add.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    journal_status = journal_subparsers.add_parser("status", help="Move a journal fix to another status.")
    journal_status.add_argument("ledger", help="ledger.json written by import")
    journal_status.add_argument("instruction_id", help="Journal fix id")
    journal_status.add_argument("status", choices=JOURNAL_STATUSES, help="New status")
    journal_export = journal_subparsers.add_parser("export", help="Export journal fixes as CSV.")
    journal_export.add_argument("ledger", help="ledger.json written by import")
    journal_export.add_argument("--out", help="CSV output path (default: stdout)")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default=DEFAULT_CONFIG_NAME, help="Config output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        if args.command == "import":
            return run_import(args)
        if args.command == "check-date":
            return run_check_date(args)
        if args.command == "queue":
            return run_queue(args)
        if args.command == "override":
            return run_override(args)
        if args.command == "balances":
            return run_balances(args)
        if args.command == "allocate":
            return run_allocate(args)
        if args.command == "open-items":
            return run_open_items(args)
        if args.command == "journal":
            if args.journal_command == "add":
                return run_journal_add(args)
            if args.journal_command == "status":
                return run_journal_status(args)
            if args.journal_command == "export":
                return run_journal_export(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
