"""
TeamTime — staged import & transfer command-line client.

Commands:
    teamtime login <email>
    teamtime logout
    teamtime flows next <area_id>              # mandatory next step
    teamtime flows alternatives <area_id>      # optional edges
    teamtime flows config                      # whole flow graph
    teamtime mappings list <area_id>
    teamtime mappings export <area_id> -o mappings.json [--xlsx]
    teamtime mappings import <area_id> mappings.json
    teamtime mappings clone <source_area_id> <target_area_id>
    teamtime import validate <file> --area <id>
    teamtime import preview <file> --area <id> [--rows 10]
    teamtime import run <file> --area <id> [--batch-size N] [--start-row N] [--no-wait]
    teamtime import status <import_id>
    teamtime import cancel <import_id>
    teamtime import history [--area <id>]
    teamtime staging list <area_id> [--status VALIDATED]
    teamtime staging validate <staging_id>
    teamtime staging transfer <staging_id> [<staging_id> ...]
    teamtime staging delete <staging_id>

Destructive commands ask for confirmation unless --yes is given.
"""

import argparse
import getpass
import sys

from teamtime import init_client
from teamtime.core.exceptions import ApiError
from teamtime.models.imports import ImportOptions
from teamtime.services import (
    area_flow_service,
    excel_import_service,
    field_mapping_service,
    staging_service,
)
from teamtime.services.permission import check_capability

COMMAND_CAPABILITIES = {
    ("flows", "next"): "flow_view",
    ("flows", "alternatives"): "flow_view",
    ("flows", "config"): "flow_view",
    ("mappings", "list"): "mapping_view",
    ("mappings", "export"): "mapping_view",
    ("mappings", "import"): "mapping_manage",
    ("mappings", "clone"): "mapping_manage",
    ("import", "validate"): "import_run",
    ("import", "preview"): "import_run",
    ("import", "run"): "import_run",
    ("import", "cancel"): "import_run",
    ("import", "status"): "import_history_view",
    ("import", "history"): "import_history_view",
    ("staging", "list"): "staging_view",
    ("staging", "validate"): "staging_review",
    ("staging", "transfer"): "staging_transfer",
    ("staging", "delete"): "staging_delete",
}


def _confirm(args, prompt: str) -> bool:
    if args.yes:
        return True
    answer = input(f"  ⚠️  {prompt} [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def _flow_line(flow) -> str:
    target = flow.to_area.name if flow.to_area else f"area {flow.to_area_id}"
    flags = []
    if flow.is_required:
        flags.append("required")
    if flow.requires_approval:
        flags.append("approval")
    if flow.can_skip:
        flags.append("skippable")
    return f"  #{flow.flow_order:<3} → {target:<30} {', '.join(flags)}"


# ── Session ──────────────────────────────────────────────────────────────────


def cmd_login(args, client):
    password = args.password or getpass.getpass("  Password: ")
    user = client.session.login(args.email, password)
    print(f"  ✅ Logged in as {user.get('name') or user.get('email')} ({user.get('role')})")


def cmd_logout(args, client):
    client.session.logout()
    print("  ✅ Logged out")


# ── Flows ────────────────────────────────────────────────────────────────────


def cmd_flows_next(args, client):
    flow = area_flow_service.get_next_flow_step(args.area_id)
    if flow is None:
        print(f"  No mandatory next step from area {args.area_id}")
        return
    print(_flow_line(flow))


def cmd_flows_alternatives(args, client):
    flows = area_flow_service.get_alternative_flows(args.area_id)
    if not flows:
        print(f"  No alternative flows from area {args.area_id}")
    for flow in flows:
        print(_flow_line(flow))


def cmd_flows_config(args, client):
    configuration = area_flow_service.get_flow_configuration()
    if not configuration:
        print("  No flow configuration available")
    for entry in configuration:
        area = entry["area"]
        print(f"\n  {area.name if area else '(unknown area)'}")
        for flow in entry["flows"]:
            print("  " + _flow_line(flow))
    print()


# ── Mappings ─────────────────────────────────────────────────────────────────


def cmd_mappings_list(args, client):
    mappings = field_mapping_service.get_field_mappings(args.area_id)
    print(f"\n  Field mappings of area {args.area_id} ({len(mappings)})")
    print("  " + "═" * 60)
    for m in mappings:
        required = "*" if m.is_required else " "
        print(f"  {m.order_index:>3} {required} {m.source_field:<28} → {m.target_field}")
    print()


def cmd_mappings_export(args, client):
    mappings = field_mapping_service.get_field_mappings(args.area_id)
    if args.xlsx:
        buffer = field_mapping_service.export_mappings_xlsx(
            mappings, title=f"Field mappings — area {args.area_id}"
        )
        with open(args.output, "wb") as fh:
            fh.write(buffer.getvalue())
    else:
        document = field_mapping_service.build_mappings_document(args.area_id, mappings)
        field_mapping_service.write_mappings_document(document, args.output)
    print(f"  ✅ {len(mappings)} mapping(s) written to {args.output}")


def cmd_mappings_import(args, client):
    mappings = field_mapping_service.read_mappings_document(args.path)
    field_mapping_service.import_mappings(args.area_id, mappings)
    print(f"  ✅ {len(mappings)} mapping(s) imported into area {args.area_id}")


def cmd_mappings_clone(args, client):
    mappings = field_mapping_service.clone_mappings(args.source_area_id, args.target_area_id)
    print(
        f"  ✅ Mappings cloned from area {args.source_area_id} to area {args.target_area_id}"
        f" ({len(mappings)} now configured)"
    )


# ── Import ───────────────────────────────────────────────────────────────────


def cmd_import_validate(args, client):
    excel_import_service.inspect_workbook(args.file)
    report = excel_import_service.validate_excel_structure(args.file, args.area)
    valid = report.get("isValid", report.get("valid"))
    print(f"  {'✅ Structure is valid' if valid else '❌ Structure has problems'}")
    for problem in report.get("errors") or []:
        print(f"     - {problem}")
    for warning in report.get("warnings") or []:
        print(f"     ⚠️  {warning}")


def cmd_import_preview(args, client):
    preview = excel_import_service.preview_excel_data(args.file, args.area, max_rows=args.rows)
    rows = preview["previewRows"]
    print(f"  Showing {len(rows)} row(s)")
    for row in rows:
        print("  " + " | ".join(f"{k}={v}" for k, v in row.items()))


def cmd_import_run(args, client):
    workflow = client.new_import_workflow()
    summary = workflow.select_file(args.file, args.area)
    print(f"  📄 {summary.file_name}: {summary.data_rows if summary.data_rows is not None else '?'} row(s)")
    options = ImportOptions(
        batch_size=args.batch_size,
        start_row=args.start_row,
        skip_validation=args.skip_validation,
    )

    def show(log):
        pct = f"{log.progress}%" if log.progress is not None else log.status
        print(f"  ⏳ {pct} ({log.records_processed} processed)")

    log = workflow.run_import(options, wait=not args.no_wait, on_progress=show)
    if log is None:
        print(f"  Import {workflow.result.import_id} started; check it with 'teamtime import status'")
        return
    icon = "✅" if log.succeeded else "❌"
    print(
        f"  {icon} Import {log.id or ''} {log.status}: "
        f"{log.records_imported} imported, {log.records_failed} failed"
    )
    if not log.succeeded:
        return 1


def cmd_import_status(args, client):
    log = excel_import_service.get_import_progress(args.import_id)
    pct = f" {log.progress}%" if log.progress is not None else ""
    print(f"  Import {log.id}: {log.status}{pct} ({log.records_processed} processed)")


def cmd_import_cancel(args, client):
    if not _confirm(args, f"Cancel import {args.import_id}?"):
        print("  Aborted")
        return 1
    excel_import_service.cancel_import(args.import_id)
    print(f"  ✅ Cancel requested for import {args.import_id}")


def cmd_import_history(args, client):
    history = excel_import_service.get_import_history(args.page, args.limit, args.area)
    print(f"\n  Import history ({history['pagination'].get('total', len(history['imports']))})")
    print("  " + "═" * 60)
    for log in history["imports"]:
        print(f"  {str(log.id):<8} {log.status:<12} {log.file_name or '':<30} {log.created_at or ''}")
    print()


# ── Staging ──────────────────────────────────────────────────────────────────


def cmd_staging_list(args, client):
    page = staging_service.get_staging_projects_by_area(
        args.area_id, status=args.status, page=args.page, limit=args.limit
    )
    projects = page["projects"]
    print(f"\n  Staging projects of area {args.area_id} ({page['pagination'].get('total')})")
    print("  " + "═" * 60)
    for p in projects:
        name = p.data.get("name") or p.data.get("title") or ""
        print(f"  {str(p.id):<8} {p.status:<12} {name}")
    ready = staging_service.transferable_ids(projects)
    if ready:
        print(f"\n  Ready to transfer: {', '.join(str(i) for i in ready)}")
    print()


def cmd_staging_validate(args, client):
    outcome = staging_service.validate_staging_project(args.staging_id)
    if outcome["is_valid"]:
        print(f"  ✅ Staging project {args.staging_id} is valid")
        return
    print(f"  ❌ Staging project {args.staging_id} has {len(outcome['errors'])} error(s)")
    for err in outcome["errors"]:
        print(f"     - {err['field'] or '(record)'}: {err['message']}")
    return 1


def cmd_staging_transfer(args, client):
    if len(args.staging_ids) == 1:
        staging_service.transfer_to_active(args.staging_ids[0])
        print(f"  ✅ Staging project {args.staging_ids[0]} transferred")
        return
    summary = staging_service.batch_transfer_to_active(args.staging_ids)
    print(f"  ✅ Successful: {summary.get('successful')}  ❌ Failed: {summary.get('failed')}")


def cmd_staging_delete(args, client):
    if not _confirm(args, f"Delete staging project {args.staging_id}? This cannot be undone."):
        print("  Aborted")
        return 1
    staging_service.delete_staging_project(args.staging_id, confirm=True)
    print(f"  ✅ Staging project {args.staging_id} deleted")


# ── Parser ───────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="teamtime",
        description="TeamTime — staged import & area transfer client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--env", help="Config name (development, testing, production)")
    parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    sub = parser.add_subparsers(dest="command", help="Command")

    # login / logout
    p_login = sub.add_parser("login", help="Sign in and store the session")
    p_login.add_argument("email")
    p_login.add_argument("--password", help="Prompted for when omitted")
    sub.add_parser("logout", help="Sign out and forget the session")

    # flows
    p_flows = sub.add_parser("flows", help="Area flow graph")
    flows = p_flows.add_subparsers(dest="action")
    flows.add_parser("next", help="Mandatory next step").add_argument("area_id")
    flows.add_parser("alternatives", help="Optional edges").add_argument("area_id")
    flows.add_parser("config", help="Whole configuration")

    # mappings
    p_map = sub.add_parser("mappings", help="Field mappings")
    maps = p_map.add_subparsers(dest="action")
    maps.add_parser("list", help="List an area's mappings").add_argument("area_id")
    p_export = maps.add_parser("export", help="Save an area's mappings to a file")
    p_export.add_argument("area_id")
    p_export.add_argument("--output", "-o", required=True)
    p_export.add_argument("--xlsx", action="store_true", help="Excel instead of JSON")
    p_mimport = maps.add_parser("import", help="Load mappings from a JSON document")
    p_mimport.add_argument("area_id")
    p_mimport.add_argument("path")
    p_clone = maps.add_parser("clone", help="Copy mappings to another area")
    p_clone.add_argument("source_area_id")
    p_clone.add_argument("target_area_id")

    # import
    p_imp = sub.add_parser("import", help="Excel import into staging")
    imps = p_imp.add_subparsers(dest="action")
    for name, text in (("validate", "Check file structure"), ("preview", "Preview mapped rows")):
        p = imps.add_parser(name, help=text)
        p.add_argument("file")
        p.add_argument("--area", required=True)
        if name == "preview":
            p.add_argument("--rows", type=int, default=excel_import_service.DEFAULT_PREVIEW_ROWS)
    p_run = imps.add_parser("run", help="Import a file into staging")
    p_run.add_argument("file")
    p_run.add_argument("--area", required=True)
    p_run.add_argument("--batch-size", type=int)
    p_run.add_argument("--start-row", type=int)
    p_run.add_argument("--skip-validation", action="store_true")
    p_run.add_argument("--no-wait", action="store_true", help="Do not poll for completion")
    imps.add_parser("status", help="Progress of an import").add_argument("import_id")
    imps.add_parser("cancel", help="Cancel a running import").add_argument("import_id")
    p_hist = imps.add_parser("history", help="Past imports")
    p_hist.add_argument("--area")
    p_hist.add_argument("--page", type=int, default=1)
    p_hist.add_argument("--limit", type=int, default=20)

    # staging
    p_stg = sub.add_parser("staging", help="Staging review & transfer")
    stgs = p_stg.add_subparsers(dest="action")
    p_slist = stgs.add_parser("list", help="Staged projects of an area")
    p_slist.add_argument("area_id")
    p_slist.add_argument("--status", help="PENDING, VALIDATED, ERROR, TRANSFERRED or ALL")
    p_slist.add_argument("--page", type=int, default=1)
    p_slist.add_argument("--limit", type=int, default=20)
    stgs.add_parser("validate", help="Re-validate a record").add_argument("staging_id")
    stgs.add_parser("transfer", help="Promote to live projects").add_argument(
        "staging_ids", nargs="+"
    )
    stgs.add_parser("delete", help="Delete a record").add_argument("staging_id")

    return parser


COMMANDS = {
    ("login", None): cmd_login,
    ("logout", None): cmd_logout,
    ("flows", "next"): cmd_flows_next,
    ("flows", "alternatives"): cmd_flows_alternatives,
    ("flows", "config"): cmd_flows_config,
    ("mappings", "list"): cmd_mappings_list,
    ("mappings", "export"): cmd_mappings_export,
    ("mappings", "import"): cmd_mappings_import,
    ("mappings", "clone"): cmd_mappings_clone,
    ("import", "validate"): cmd_import_validate,
    ("import", "preview"): cmd_import_preview,
    ("import", "run"): cmd_import_run,
    ("import", "status"): cmd_import_status,
    ("import", "cancel"): cmd_import_cancel,
    ("import", "history"): cmd_import_history,
    ("staging", "list"): cmd_staging_list,
    ("staging", "validate"): cmd_staging_validate,
    ("staging", "transfer"): cmd_staging_transfer,
    ("staging", "delete"): cmd_staging_delete,
}


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    key = (args.command, getattr(args, "action", None))
    handler = COMMANDS.get(key)
    if handler is None:
        parser.print_help()
        return 2

    client = init_client(args.env)
    try:
        capability = COMMAND_CAPABILITIES.get(key)
        if capability:
            check_capability(client.session.role, capability)
        return handler(args, client) or 0
    except ApiError as exc:
        print(f"  ❌ {exc.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
