"""
CLI main entry point.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from ..cc_bank import CCBankReconciler
from ..config import Config, ConfigValidationError, create_default_config, load_config
from ..errors import MatchingError
from ..linking import LinkManager, LinkResult
from ..matching import AutoMatchOrchestrator, AutoMatchStatus
from ..schemas.entities import AggregateStatus
from ..state_store import StateStore

logger = logging.getLogger(__name__)

STATUS_ICONS = {
    AutoMatchStatus.AUTO_MATCHED: "✓",
    AutoMatchStatus.CANDIDATE: "?",
    AutoMatchStatus.NO_MATCH: "·",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="invoice-matcher",
        description="Match invoice line items to bank and credit card transactions",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init-config", help="Write a default config file")
    subparsers.add_parser("status", help="Show matching statistics")

    # automatch command
    automatch_parser = subparsers.add_parser(
        "automatch", help="Score an invoice's line items against transactions"
    )
    automatch_parser.add_argument("invoice_id", help="Invoice ID")
    automatch_parser.add_argument(
        "--apply",
        action="store_true",
        help="Link every auto-matched line item",
    )
    automatch_parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON",
    )

    # link commands
    link_parser = subparsers.add_parser("link", help="Link a line item to a transaction")
    link_parser.add_argument("line_item_id")
    link_parser.add_argument("transaction_id")

    replace_parser = subparsers.add_parser(
        "replace", help="Re-point a linked line item at another transaction"
    )
    replace_parser.add_argument("line_item_id")
    replace_parser.add_argument("transaction_id")

    unlink_parser = subparsers.add_parser("unlink", help="Unlink a line item")
    unlink_parser.add_argument("line_item_id")

    doc_link_parser = subparsers.add_parser(
        "doc-link", help="Link a whole invoice document to a transaction"
    )
    doc_link_parser.add_argument("invoice_id")
    doc_link_parser.add_argument("transaction_id")

    # CC ↔ bank commands
    cc_attach_parser = subparsers.add_parser(
        "cc-attach", help="Attach card purchases to a bank card charge"
    )
    cc_attach_parser.add_argument("bank_transaction_id")
    cc_attach_parser.add_argument("cc_transaction_ids", nargs="+")
    cc_attach_parser.add_argument(
        "--confidence", type=int, default=None, help="Confidence of the accepted proposal (0-100)"
    )

    cc_unmatch_parser = subparsers.add_parser(
        "cc-unmatch", help="Detach card purchases from a CC ↔ bank match"
    )
    cc_unmatch_parser.add_argument("match_id")
    cc_unmatch_parser.add_argument("cc_transaction_ids", nargs="+")

    cc_status_parser = subparsers.add_parser(
        "cc-status", help="Approve or reject a pending CC ↔ bank match"
    )
    cc_status_parser.add_argument("match_id")
    cc_status_parser.add_argument(
        "status",
        choices=[AggregateStatus.APPROVED.value, AggregateStatus.REJECTED.value],
    )

    subparsers.add_parser("cc-propose", help="Suggest CC ↔ bank matches")

    return parser


def cmd_init_config(config_path: Path) -> int:
    """Write a default config file."""
    if config_path.exists():
        print(f"❌ {config_path} already exists")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote default config to {config_path}")
    return 0


def cmd_status(config: Config) -> int:
    """Show matching statistics."""
    store = StateStore(config.state_db_path)
    stats = store.get_stats()

    print("\n📊 Matching Status")
    print("=" * 40)
    print(f"  Invoices:               {stats['invoices_total']}")
    print(f"  Line items:             {stats['line_items_total']}")
    print(f"  Line items matched:     {stats['line_items_matched']}")
    print(f"  Document links:         {stats['document_links']}")
    print(f"  Transactions:           {stats['transactions_total']}")
    print(f"  CC ↔ bank matches:      {stats['cc_matches_total']}")
    print(f"  CC ↔ bank pending:      {stats['cc_matches_pending']}")
    print()

    return 0


def cmd_automatch(config: Config, invoice_id: str, apply: bool, as_json: bool) -> int:
    """Score (and optionally apply) auto matches for an invoice."""
    store = StateStore(config.state_db_path)
    orchestrator = AutoMatchOrchestrator(store, config)

    try:
        result = orchestrator.auto_match_invoice(invoice_id)
    except MatchingError as e:
        print(f"❌ {e}")
        return 1

    if as_json:
        print(
            json.dumps(
                {
                    "invoice_id": result.invoice_id,
                    "summary": vars(result.summary),
                    "results": [r.to_dict() for r in result.results],
                },
                indent=2,
                ensure_ascii=False,
            )
        )
    else:
        print(f"🔄 Invoice {invoice_id}: {result.total_line_items} line item(s)")
        for item in result.results:
            icon = STATUS_ICONS[item.status]
            if item.best_match:
                tx = item.best_match.transaction
                print(
                    f"  {icon} [{item.line_item_id}] → {tx.id} "
                    f"({item.confidence}%, {item.status.value})"
                )
                for reason in item.best_match.score.match_reasons:
                    print(f"     - {reason}")
            else:
                print(f"  {icon} [{item.line_item_id}] no match")
            if item.error:
                print(f"     ⚠ {item.error}")
        summary = result.summary
        print(
            f"\n✓ Auto: {summary.auto_matched}, Candidates: {summary.candidate}, "
            f"No match: {summary.no_match}, Already linked: {summary.skipped_linked}"
        )

    if not apply:
        return 0

    batch = orchestrator.apply_auto_matches_for_invoice(invoice_id)
    for outcome in batch.results:
        if outcome.success:
            print(f"  ✓ Linked {outcome.line_item_id} → {outcome.transaction_id}")
        else:
            print(f"  ❌ {outcome.line_item_id}: {outcome.error}")
    print(f"\n✓ Applied: {batch.applied}, Failed: {batch.failed}")
    return 0 if batch.failed == 0 else 1


def _print_link_result(result: LinkResult, action: str) -> int:
    if result.success:
        print(f"✓ {action}: {result.line_item_id}")
        return 0
    print(f"❌ {action} failed ({result.error_type}): {result.error}")
    return 1


def cmd_link(config: Config, command: str, args: argparse.Namespace) -> int:
    """Run a single link operation."""
    manager = LinkManager(StateStore(config.state_db_path))

    if command == "link":
        return _print_link_result(manager.link(args.line_item_id, args.transaction_id), "Linked")
    if command == "replace":
        return _print_link_result(
            manager.replace(args.line_item_id, args.transaction_id), "Replaced"
        )
    if command == "unlink":
        return _print_link_result(manager.unlink(args.line_item_id), "Unlinked")
    return _print_link_result(
        manager.create_document_link(args.invoice_id, args.transaction_id), "Document linked"
    )


def cmd_cc(config: Config, command: str, args: argparse.Namespace) -> int:
    """Run a CC ↔ bank command."""
    reconciler = CCBankReconciler(StateStore(config.state_db_path), config)

    try:
        if command == "cc-attach":
            result = reconciler.attach(
                args.bank_transaction_id, args.cc_transaction_ids, confidence=args.confidence
            )
            print(json.dumps(reconciler.to_dict(result), indent=2, ensure_ascii=False))
        elif command == "cc-unmatch":
            result = reconciler.unmatch(args.match_id, args.cc_transaction_ids)
            if result is None:
                print(f"✓ Match {args.match_id} removed (no purchases left)")
            else:
                print(json.dumps(reconciler.to_dict(result), indent=2, ensure_ascii=False))
        elif command == "cc-status":
            result = reconciler.set_status(args.match_id, AggregateStatus(args.status))
            print(f"✓ Match {result.id} is now {result.status.value}")
        else:
            proposals = reconciler.propose_matches()
            if not proposals:
                print("No CC ↔ bank matches to propose")
            for proposal in proposals:
                print(
                    f"  💳 {proposal.credit_card_id} {proposal.charge_date.isoformat()}: "
                    f"{len(proposal.cc_transaction_ids)} purchase(s) → {proposal.bank_transaction_id} "
                    f"({proposal.confidence}%, discrepancy {proposal.discrepancy_minor})"
                )
    except MatchingError as e:
        print(f"❌ {e}")
        return 1

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config)

    # Load config
    try:
        config = load_config(parsed.config)
        errors = config.validate()
        if errors:
            raise ConfigValidationError("; ".join(errors))
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    if parsed.command == "status":
        return cmd_status(config)
    elif parsed.command == "automatch":
        return cmd_automatch(config, parsed.invoice_id, parsed.apply, parsed.json)
    elif parsed.command in ("link", "replace", "unlink", "doc-link"):
        return cmd_link(config, parsed.command, parsed)
    elif parsed.command.startswith("cc-"):
        return cmd_cc(config, parsed.command, parsed)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
