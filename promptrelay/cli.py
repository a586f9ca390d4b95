#!/usr/bin/env python3
"""
promptrelay CLI.

Every command has a primary name and standard aliases:

    COMMAND         ALIASES         WHAT IT DOES
    -------         -------         ----------------------------------
    serve           start, up       Start the promptrelay API server
    ping            status, health  Ping a running instance
    models          catalog         Show the configured model catalog
    optimize        ask             Send a prompt to a running instance
    tune            set             Write a runtime override (no restart)
"""

import argparse
import json
import sys

__version__ = "1.0.0"

DEFAULT_URL = "http://localhost:8000"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_serve(args):
    """Start the promptrelay API server."""
    import uvicorn
    from promptrelay.config import get_config

    cfg = get_config()
    server = cfg.get("server", {})
    host = args.host or server.get("host", "0.0.0.0")
    port = args.port or server.get("port", 8000)

    print(f"  promptrelay v{__version__} on {host}:{port}")
    print(f"  Upstream: {cfg.get('backend', {}).get('url', '?')}")
    print(f"  Storage: {cfg.get('storage', {}).get('backend', 'sqlite')}")
    print()

    uvicorn.run(
        "promptrelay.main:app",
        host=host,
        port=port,
        reload=args.reload,
        log_level="info",
    )


def cmd_ping(args):
    """Ping a running promptrelay instance."""
    import httpx

    url = (args.url or DEFAULT_URL).rstrip("/")
    try:
        resp = httpx.get(f"{url}/health", params={"upstream": "true"}, timeout=10)
        if resp.status_code == 200:
            data = resp.json()
            print(f"  {url} is UP (version {data.get('version', '?')})")
            upstream = data.get("upstream", {})
            if upstream.get("reachable"):
                print(f"  Upstream: reachable, {len(upstream.get('served_models', []))} models served")
                missing = upstream.get("missing_models") or []
                if missing:
                    print(f"  Not served upstream: {', '.join(missing)}")
            else:
                print("  Upstream: UNREACHABLE")
            models = httpx.get(f"{url}/api/v1/models", timeout=5).json()
            print(f"  Models enabled: {', '.join(models) if models else 'none'}")
        else:
            print(f"  No answer, got HTTP {resp.status_code}")
            return 1
    except httpx.ConnectError:
        print(f"  Nothing listening at {url}")
        return 1
    except httpx.HTTPError as e:
        print(f"  Error: {e}")
        return 1
    return 0


def cmd_models(args):
    """Print the model catalog from config.yaml."""
    from promptrelay.catalog import ModelCatalog
    from promptrelay.config import get_config

    catalog = ModelCatalog.from_config(get_config().get("models"))
    print(f"  {'MODEL':<20} {'CLASS':<10} {'COST/1K':>8} {'PRIO':>5} {'TIMEOUT':>8}  STATUS")
    for m in catalog.all():
        if not m.enabled and not args.all:
            continue
        status = "enabled" if m.enabled else "disabled"
        print(f"  {m.id:<20} {m.model_class.value:<10} {m.cost_per_k_tokens:>8.2f} "
              f"{m.priority:>5} {m.timeout:>7}s  {status}")
    return 0


def cmd_optimize(args):
    """Send a prompt to a running instance and print the answer."""
    import httpx

    url = (args.url or DEFAULT_URL).rstrip("/")
    body = {
        "prompt": " ".join(args.prompt),
        "strategy": args.strategy,
        "optimization_type": args.type,
        "enable_memory": bool(args.user),
    }
    if args.session:
        body["session_id"] = args.session
    if args.model:
        body["preferred_models"] = args.model

    headers = {"X-User-Id": args.user} if args.user else {}
    path = "/api/v1/optimize" if args.user else "/api/v1/public/optimize"
    try:
        resp = httpx.post(f"{url}{path}", json=body, headers=headers, timeout=args.timeout)
    except httpx.HTTPError as e:
        print(f"  Request failed: {e}", file=sys.stderr)
        return 1

    data = resp.json()
    if resp.status_code != 200:
        print(f"  {data.get('error', resp.status_code)}: {data.get('message', '')}", file=sys.stderr)
        return 1
    if args.json:
        print(json.dumps(data, indent=2))
        return 0

    if data.get("optimized_prompt") != data.get("original_prompt"):
        print(f"  Rewritten: {data['optimized_prompt']}")
    print(f"  Models: {', '.join(data.get('models_used', []))} "
          f"({data.get('processing_time_ms', 0):.0f}ms)")
    session_id = data.get("metadata", {}).get("session_id")
    if session_id:
        print(f"  Session: {session_id}")
    print()
    print(data.get("final_response", ""))
    return 0


def cmd_tune(args):
    """Write or clear a runtime override in runtime_config.yaml."""
    import yaml
    from promptrelay.config import update_runtime_config

    if args.unset:
        value = None
    elif args.value is None:
        print("  A value is required unless --unset is given", file=sys.stderr)
        return 1
    else:
        # "90" -> 90, "true" -> True, "[a, b]" -> list
        value = yaml.safe_load(args.value)
    if not update_runtime_config(args.section, args.key, value):
        print("  Could not write runtime_config.yaml", file=sys.stderr)
        return 1
    if args.unset:
        print(f"  Cleared {args.section}.{args.key}")
    else:
        print(f"  {args.section}.{args.key} = {value!r} (picked up without restart)")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under multiple names."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="promptrelay",
        description="promptrelay: prompt optimization and multi-model orchestration.",
        epilog=(
            "Each command has standard aliases.\n"
            "Example: 'promptrelay serve' and 'promptrelay start' do the same thing.\n"
            "Run 'promptrelay <command> --help' for command-specific options."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"promptrelay {__version__}",
    )

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    # serve / start / up
    def setup_serve(p):
        p.add_argument("--host", default=None, help="Bind host (default: from config)")
        p.add_argument("--port", "-p", type=int, default=None, help="Bind port (default: from config)")
        p.add_argument("--reload", action="store_true", help="Auto-reload on code changes")

    _add_command(sub, ["serve", "start", "up"],
                 "Start the promptrelay API server", cmd_serve, setup_serve)

    # ping / status / health
    def setup_ping(p):
        p.add_argument("--url", "-u", default=None, help=f"promptrelay URL (default: {DEFAULT_URL})")

    _add_command(sub, ["ping", "status", "health"],
                 "Ping a running promptrelay instance", cmd_ping, setup_ping)

    # models / catalog
    def setup_models(p):
        p.add_argument("--all", "-a", action="store_true", help="Include disabled models")

    _add_command(sub, ["models", "catalog"],
                 "Show the configured model catalog", cmd_models, setup_models)

    # optimize / ask
    def setup_optimize(p):
        p.add_argument("prompt", nargs="+", help="Prompt text")
        p.add_argument("--strategy", "-s", default="quality",
                       help="quality | speed | consensus | cost_effective")
        p.add_argument("--type", "-t", default="clarity",
                       help="clarity | technical | creative | analytical")
        p.add_argument("--model", "-m", action="append", default=None,
                       help="Preferred model (can specify multiple times)")
        p.add_argument("--user", default=None,
                       help="X-User-Id to send; omit to use the public endpoint")
        p.add_argument("--session", default=None, help="Continue an existing session")
        p.add_argument("--url", "-u", default=None, help=f"promptrelay URL (default: {DEFAULT_URL})")
        p.add_argument("--timeout", type=float, default=120.0, help="HTTP timeout in seconds")
        p.add_argument("--json", action="store_true", help="Print the raw JSON response")

    _add_command(sub, ["optimize", "ask"],
                 "Send a prompt to a running instance", cmd_optimize, setup_optimize)

    # tune / set
    def setup_tune(p):
        p.add_argument("section", help="Config section, e.g. rewriter or strategies")
        p.add_argument("key", help="Key inside the section, e.g. max_prompt_length")
        p.add_argument("value", nargs="?", default=None, help="New value (parsed as YAML)")
        p.add_argument("--unset", action="store_true", help="Remove the override instead")

    _add_command(sub, ["tune", "set"],
                 "Write a runtime override to runtime_config.yaml", cmd_tune, setup_tune)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
