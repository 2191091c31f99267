#!/usr/bin/env python3
"""
Constituency Radar Runner
=========================
Orchestrates the pipeline: Fetch > Normalize/Dedup > Classify >
Issues + Attack points > Score > Flush

Usage:
  python runner.py --config packs/west_bengal.json     # full run
  python runner.py --config packs/west_bengal.json --rescore-only
  python runner.py --config packs/west_bengal.json --briefing bhowanipore
  RADAR_DEMO_MODE=1 python runner.py --config ...       # placeholder content, clearly flagged
"""

import argparse
import sys
import time

import briefing
import queries
import llm as llm_caller
from config import load_config_pack, get_settings, get_active_sources, get_constituencies, LLM_CONFIGS
from lexicon import load_lexicon
from models import Constituency
from store import Store
from pipeline import fetch, normalize, classify, issues, attack_points, vulnerability


def _print_report(all_reports, run_time):
    print("\n" + "=" * 70)
    print("RUN REPORT")
    print("=" * 70)
    for r in all_reports:
        print("  " + r.summary())
    print("  Total runtime: {}s".format(run_time))
    print("=" * 70)


def _print_ranking(store, limit=10):
    print("\nMost vulnerable:")
    for row in queries.ranked_constituencies(store, limit):
        if row["score"] is None:
            continue
        flag = "  !!! degraded" if row["degraded"] else ""
        print("  {:>3}  {:<28} {:<24} {}{}".format(
            row["score"], row["name"][:28], (row["leader_name"] or "-")[:24], row["trend"], flag))


def reanalyze(store, chain, constituency_ids, max_workers=8):
    """Re-classify every stored item (e.g. after a lexicon change). Annotations only."""
    items = []
    for cid in constituency_ids:
        items.extend(store.items_for(cid))
    results, report = classify.run(items, chain, store, max_workers)
    report.step_name = "reanalyze"
    return results, report


def main(argv=None):
    parser = argparse.ArgumentParser(description="Constituency Radar")
    parser.add_argument("--config", help="Path to config pack JSON", default=None)
    parser.add_argument("--store", help="Store file (overrides settings)", default=None)
    parser.add_argument("--demo", action="store_true", help="Allow placeholder content when sources fail")
    parser.add_argument("--window-days", type=int, default=None)
    parser.add_argument("--max-results", type=int, default=20)
    parser.add_argument("--rescore-only", action="store_true", help="Skip fetching; recompute scores")
    parser.add_argument("--reanalyze", action="store_true", help="Re-classify stored items before scoring")
    parser.add_argument("--briefing", metavar="CONSTITUENCY_ID", help="Print a daily briefing and exit")
    args = parser.parse_args(argv)

    start_time = time.time()
    print("=" * 70)
    print("CONSTITUENCY RADAR")
    print("=" * 70)

    pack = load_config_pack(args.config)
    if args.config and pack is None:
        print("  X Config pack not found: {}".format(args.config))
        return 1
    if pack:
        print("Config pack: {}".format(pack.get("name", args.config)))
    settings = get_settings(pack)
    if args.store:
        settings["store_path"] = args.store
    if args.demo:
        settings["demo_mode"] = True
    if args.window_days:
        settings["window_days"] = args.window_days
    if settings["demo_mode"]:
        print("!!! DEMO MODE ON: failed sources may return placeholder content")

    store = Store(settings["store_path"])
    for data in get_constituencies(pack):
        store.upsert_constituency(Constituency.from_dict(data))
    constituencies = store.constituencies()

    if args.briefing:
        b = briefing.daily_briefing(store, args.briefing)
        if b is None:
            print("  X Unknown constituency: {}".format(args.briefing))
            return 1
        print(briefing.format_briefing(b))
        return 0

    if not constituencies:
        print("\nNo constituencies configured. Add them to a config pack.")
        return 1

    lexicon = load_lexicon(settings.get("lexicon_path") or (pack or {}).get("lexicon_path"))
    chain = classify.build_chain(settings, lexicon)
    ai = [s.name for s in chain.strategies]
    print("Lexicon: {} | AI classifiers: {}".format(
        lexicon.version, ", ".join(ai) if ai else "none (lexical only)"))
    available = llm_caller.get_available_llms()
    if any(s in LLM_CONFIGS and s not in available for s in ai):
        print("    (missing API keys for some LLMs; they will fall through to lexical)")

    ids = [c.id for c in constituencies]
    all_reports = []
    fetcher = None
    try:
        if args.reanalyze:
            _, report = reanalyze(store, chain, ids, settings["max_classify_workers"])
            all_reports.append(report)

        if not args.rescore_only:
            sources = get_active_sources(pack)
            print("Sources: {} | Constituencies: {}".format(len(sources), len(constituencies)))
            fetcher = fetch.Fetcher(sources, settings, store)

            # Step 1: Fetch
            jobs = fetch.build_requests(constituencies, sources, args.max_results)
            results, report = fetch.run(fetcher, jobs)
            all_reports.append(report)

            # Step 2: Normalize + dedup
            items, report = normalize.run(results, store, sources)
            all_reports.append(report)

            # Step 3: Classify
            classified, report = classify.run(items, chain, store, settings["max_classify_workers"])
            all_reports.append(report)

            # Step 4: Issues and attack points
            aggregator = issues.IssueAggregator(store, lexicon, settings["similarity_threshold"])
            _, report = issues.run(items, classified, aggregator)
            all_reports.append(report)

            generator = attack_points.AttackPointGenerator(store, lexicon)
            targets = {c.id: c.leader_name for c in constituencies if c.leader_name}
            _, report = attack_points.run(items, classified, generator, targets)
            all_reports.append(report)

        # Step 5: Score
        scorer = vulnerability.VulnerabilityScorer(
            store, classify.LexicalClassifier(lexicon, settings["severity_upgrade_hits"]),
            settings["window_days"], settings["trend_threshold"])
        _, report = vulnerability.run(scorer, ids)
        all_reports.append(report)
    except KeyboardInterrupt:
        print("\n  X Interrupted, cancelling outstanding fetches")
        if fetcher:
            fetcher.cancel()
        store.flush()
        return 130

    flushed = store.flush()
    print("\nStore: {}{}".format(settings["store_path"], "" if flushed else " (NOT SAVED, will retry next run)"))
    _print_ranking(store)
    _print_report(all_reports, int(time.time() - start_time))
    return 0 if flushed else 2


if __name__ == "__main__":
    sys.exit(main())
