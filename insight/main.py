from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any

from insight.config import resolve_settings
from insight.errors import InsightError, ValidationError
from insight.maturity import derive_maturity
from insight.models import ScanRequest, utc_now_iso
from insight.pipeline import build_services
from insight.storage import Store

LOGGER = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def write_json_file(path: str, payload: dict[str, Any]) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, ensure_ascii=False)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="AI service security intelligence and governance scoring")
    parser.add_argument("--settings", default=os.getenv("AEGIS_SETTINGS", "/app/config/settings.yaml"), help="Path to settings YAML")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"), help="Logging level")
    parser.add_argument("--json-output", help="Optional path for JSON output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Research a service or vendor and persist the assessment")
    scan.add_argument("--subject", required=True, help="Service or vendor name")
    scan.add_argument("--url", help="Optional service URL")
    scan.add_argument("--kind", choices=["service", "vendor"], default="service")
    scan.add_argument("--org-id", help="Organization id")
    scan.add_argument("--user-id", help="Acting user id")
    scan.add_argument("--tool-id", help="Tracked tool to receive the derived risk tier")
    scan.add_argument("--request-id", help="Request whose submission receives the assessment")
    scan.add_argument("--report-id", help="Existing report to overwrite")

    maturity = subparsers.add_parser("maturity", help="Compute the governance maturity score for an organization")
    maturity.add_argument("--org-id", required=True, help="Organization id")

    subparsers.add_parser("init-db", help="Create the database schema")
    return parser


async def run_command(args: argparse.Namespace) -> tuple[dict[str, Any], int]:
    settings = resolve_settings(args.settings)
    if args.command == "init-db":
        Store(settings.db_path).init_db()
        return {"db_path": settings.db_path}, 0

    services = build_services(settings)
    if args.command == "scan":
        outcome = await services.pipeline.run(
            ScanRequest(
                subject_name=args.subject,
                url=args.url,
                kind=args.kind,
                org_id=args.org_id,
                user_id=args.user_id,
                tool_id=args.tool_id,
                request_id=args.request_id,
                report_id=args.report_id,
            )
        )
        return outcome.to_dict(), 0 if outcome.success else 4

    result = await derive_maturity(services.store, services.completion, args.org_id)
    return result.to_dict(), 0


def main() -> int:
    parser = build_arg_parser()
    args = parser.parse_args()
    setup_logging(args.log_level)

    try:
        result, exit_code = asyncio.run(run_command(args))
    except ValidationError as exc:
        LOGGER.error("Invalid arguments: %s", exc)
        return 2
    except InsightError as exc:
        LOGGER.error("Command %s failed: %s", args.command, exc)
        return 4

    payload = {"result": result, "generated_at": utc_now_iso()}
    if args.json_output:
        write_json_file(args.json_output, payload)
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
