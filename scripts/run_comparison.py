"""
Send one prompt through POST /compare and print a per-model comparison report.

Usage (server must be running):
    python scripts/run_comparison.py "Explain CRDTs in two sentences"
    python scripts/run_comparison.py --base-url http://localhost:8000 --history 5 "…"
"""

import argparse
import sys
import textwrap
import time

import httpx

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

RESET  = "\033[0m"
BOLD   = "\033[1m"
DIM    = "\033[2m"
GREEN  = "\033[32m"
CYAN   = "\033[36m"
YELLOW = "\033[33m"
RED    = "\033[31m"


def colored(text: str, color: str) -> str:
    return f"{color}{text}{RESET}"


def bold(text: str) -> str:
    return f"{BOLD}{text}{RESET}"


def dim(text: str) -> str:
    return f"{DIM}{text}{RESET}"


def wrap(text: str, width: int = 72, indent: str = "    ") -> str:
    return textwrap.fill(text, width=width, initial_indent=indent, subsequent_indent=indent)


def separator(char: str = "─", width: int = 76) -> str:
    return dim(char * width)


def preview(text: str, limit: int = 300) -> str:
    text = text.strip().replace("\n", " ")
    return text if len(text) <= limit else text[: limit - 1] + "…"


# ---------------------------------------------------------------------------
# Report printers
# ---------------------------------------------------------------------------

def print_responses(responses: list[dict]) -> None:
    col = [22, 12, 10, 10, 12]
    header = (
        f"  {'Model':<{col[0]}}"
        f"{'Latency':>{col[1]}}"
        f"{'Tok in':>{col[2]}}"
        f"{'Tok out':>{col[3]}}"
        f"{'Cost $':>{col[4]}}"
    )
    print(bold(header))
    print("  " + separator("─", width=sum(col)))

    for r in responses:
        status = colored("FAIL", RED) if r.get("error") else colored(" ok ", GREEN)
        print(
            f"  {r['model_name'][:col[0] - 1]:<{col[0]}}"
            f"{r['response_time_ms']:>{col[1] - 2},}ms"
            f"{r['prompt_tokens']:>{col[2]},}"
            f"{r['completion_tokens']:>{col[3]},}"
            f"{r['estimated_cost']:>{col[4]}.6f}"
            f"  {status}"
        )

    total = sum(r["estimated_cost"] for r in responses)
    print("  " + separator("─", width=sum(col)))
    print(f"  {'TOTAL':<{sum(col[:4])}}{total:>{col[4]}.6f}")
    print()

    for r in responses:
        print(f"  {bold(r['model_name'])} {dim('(' + r['provider'] + ')')}")
        if r.get("error"):
            print(colored(wrap(r["error"]), RED))
        else:
            print(wrap(preview(r["response_text"])))
        print()


def print_history(history: list[dict]) -> None:
    print(separator("═"))
    print(bold(f"  RECENT COMPARISONS ({len(history)})"))
    print(separator("═"))
    for item in history:
        comparison = item["comparison"]
        cost = sum(r["estimated_cost"] or 0 for r in item["responses"])
        failed = sum(1 for r in item["responses"] if r.get("error"))
        print(
            f"  {dim(comparison['created_at'][:19])}  {comparison['id'][:8]}  "
            f"${cost:.6f}  "
            + (colored(f"{failed} failed", YELLOW) if failed else colored("all ok", GREEN))
        )
        print(wrap(preview(comparison["prompt"], limit=90), indent="    "))
    print()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(description="llm-compare report")
    parser.add_argument("prompt", help="Prompt to send to every registered model")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL of the running llm-compare server (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--history",
        type=int,
        default=0,
        metavar="N",
        help="Also print the N most recent stored comparisons",
    )
    args = parser.parse_args()

    base_url = args.base_url.rstrip("/")
    print(dim(f"  [HTTP → {base_url}]"))
    print()

    with httpx.Client(base_url=base_url) as client:
        try:
            t0 = time.perf_counter()
            resp = client.post("/compare", json={"prompt": args.prompt}, timeout=120)
            wall_ms = (time.perf_counter() - t0) * 1000
        except httpx.HTTPError as exc:
            print(colored(f"  ERROR: could not reach server at {base_url} — {exc}", RED))
            print(colored("  Start the server with:  uvicorn llm_compare.main:app --reload", YELLOW))
            sys.exit(1)

        if resp.status_code != 200:
            print(colored(f"  FAILED ({resp.status_code}): {resp.text[:200]}", RED))
            sys.exit(1)

        data = resp.json()
        print(separator("═"))
        print(bold("  COMPARISON"))
        print(separator("═"))
        print(f"  {dim('Prompt:')} {preview(args.prompt, limit=90)}")
        if "comparison_id" in data:
            print(f"  {dim('Stored as:')} {data['comparison_id']}")
        print(f"  {dim('Wall time:')} {wall_ms:.0f} ms")
        print()
        print_responses(data["responses"])

        if args.history > 0:
            hist = client.get("/history", params={"limit": args.history}, timeout=30)
            hist.raise_for_status()
            print_history(hist.json())


if __name__ == "__main__":
    main()
