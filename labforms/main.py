"""Entry point: desktop editor/filler/reviewer and a headless export command."""

from __future__ import annotations

import argparse
from dataclasses import replace
import json
import logging
from pathlib import Path
import sys

from labforms.config import Settings, configure_logging
from labforms.model.values import normalize_values
from labforms.pdf.loader import PdfLoadError, fetch_pdf_bytes, resolve_pdf_source
from labforms.pdf.writer import PdfExportError, write_filled_pdf
from labforms.persistence.codec import TemplateCodecError, decode_template

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="labforms", description="Lab form templates")
    parser.add_argument("--api-url", help="Document store API base URL")
    parser.add_argument("--log-level", help="Logging level (default from LABFORMS_LOG_LEVEL)")
    parser.add_argument("--session", help="API session cookie (default from LABFORMS_SESSION_COOKIE)")
    commands = parser.add_subparsers(dest="command", required=True)

    edit = commands.add_parser("edit", help="Design a template")
    source = edit.add_mutually_exclusive_group(required=True)
    source.add_argument("--template", help="Template id to load from the API")
    source.add_argument("--pdf", type=Path, help="Start a new template from a local PDF")
    edit.add_argument("--no-import", action="store_true", help="Do not import AcroForm fields")

    fill = commands.add_parser("fill", help="Fill a published template")
    fill.add_argument("--template", required=True, help="Template id to load from the API")
    fill.add_argument("--values-out", type=Path, help="Write submitted values as JSON")

    review = commands.add_parser("review", help="Review a submission")
    review.add_argument("--submission", required=True, help="Submission id to load from the API")

    export = commands.add_parser("export", help="Burn values into a PDF without a window")
    export.add_argument("pdf", help="Source PDF path or URL")
    export.add_argument("template", type=Path, help="Template JSON as stored by the API")
    export.add_argument("values", type=Path, help="JSON object of values keyed by field id or label")
    export.add_argument("-o", "--output", type=Path, required=True, help="Output PDF path")
    return parser


def run_export(args: argparse.Namespace, settings: Settings) -> int:
    try:
        record = decode_template(json.loads(args.template.read_text(encoding="utf-8")))
        raw_values = json.loads(args.values.read_text(encoding="utf-8"))
        location = resolve_pdf_source(args.pdf, settings.api_url)
        source = fetch_pdf_bytes(location, timeout=settings.http_timeout)
        values = normalize_values(record.fields, raw_values)
        write_filled_pdf(source, args.output, record.fields, values)
    except (OSError, json.JSONDecodeError, TemplateCodecError, PdfLoadError, PdfExportError) as exc:
        logger.error("Export failed: %s", exc)
        return 1
    logger.info("Wrote %s", args.output)
    return 0


def run_gui(args: argparse.Namespace, settings: Settings) -> int:
    from PySide6.QtWidgets import QApplication

    from labforms.persistence.gateway import HttpTemplateGateway, TemplateGatewayError
    from labforms.ui.main_window import MainWindow
    from labforms.viewer.overlay import OverlayMode

    app = QApplication(sys.argv)
    app.setApplicationName("Lab Form Builder")

    gateway = None
    if args.command != "edit" or args.template:
        try:
            gateway = HttpTemplateGateway.from_settings(settings)
        except TemplateGatewayError as exc:
            logger.error("Could not sign in to %s: %s", settings.api_url, exc)
            return 1

    if args.command == "edit":
        window = MainWindow(OverlayMode.EDIT, gateway=gateway, settings=settings)
        opened = (
            window.open_template(args.template)
            if args.template
            else window.open_local_pdf(args.pdf, import_fields=not args.no_import)
        )
    elif args.command == "fill":
        window = MainWindow(OverlayMode.FILL, gateway=gateway, settings=settings)
        opened = window.open_template(args.template)
        if args.values_out is not None:
            window.submission_ready.connect(
                lambda values: args.values_out.write_text(json.dumps(values, indent=2), encoding="utf-8")
            )
    else:
        window = MainWindow(OverlayMode.REVIEW, gateway=gateway, settings=settings)
        try:
            submission = gateway.load_submission(args.submission)
        except TemplateGatewayError as exc:
            logger.error("Could not load submission %s: %s", args.submission, exc)
            return 1
        opened = window.open_submission(submission)

    if not opened:
        return 1
    window.show()
    return app.exec()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    if args.api_url:
        settings = replace(settings, api_url=args.api_url.rstrip("/"))
    if args.session:
        settings = replace(settings, session_cookie=args.session)
    configure_logging(args.log_level or settings.log_level)

    if args.command == "export":
        return run_export(args, settings)
    return run_gui(args, settings)


if __name__ == "__main__":
    sys.exit(main())
