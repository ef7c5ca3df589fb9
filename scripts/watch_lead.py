#!/usr/bin/env python3
"""
Follow a lead until its analysis lands (or fails), the way the bill page does.

    python scripts/watch_lead.py abc123 --base-url http://localhost:8000
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from billscan.client.convergence import ConvergenceLoop, ConvergenceState, HttpLeadSource
from billscan.client.conversation import completion_message


def _print(obs):
    print(f"[{obs.lookups:>3}] {obs.state.value}")


async def main(slug: str, base_url: str, interval: float, max_polls: int) -> int:
    loop = ConvergenceLoop(
        HttpLeadSource(base_url),
        slug,
        interval=interval,
        max_polls=max_polls or None,
        on_update=_print,
    )
    obs = await loop.run()

    if obs.state is ConvergenceState.COMPLETED:
        analysis = obs.lead.get("analysis") or {}
        print(json.dumps(analysis, indent=2))
        if obs.lead.get("analysis_source") == "placeholder":
            print("⚠️  placeholder analysis (reasoning service not configured)")
        print(completion_message(analysis))
        return 0
    if obs.state is ConvergenceState.NOT_FOUND:
        print(f"❌ Lead {slug} not found")
        return 2
    print(f"❌ {obs.state.value}: {obs.error or (obs.lead or {}).get('error') or ''}")
    return 1


if __name__ == "__main__":
    p = argparse.ArgumentParser(description=__doc__)
    p.add_argument("slug")
    p.add_argument("--base-url", default="http://localhost:8000")
    p.add_argument("--interval", type=float, default=2.0)
    p.add_argument("--max-polls", type=int, default=0, help="0 = no limit")
    args = p.parse_args()
    sys.exit(asyncio.run(main(args.slug, args.base_url, args.interval, args.max_polls)))
