"""
Command line entrypoint.

    fnkit-gateway serve [--host 0.0.0.0] [--port 8080]
    fnkit-gateway pipelines init --bucket B [--endpoint URL] [--region R]
    fnkit-gateway pipelines add NAME --steps a,b,c --mode sequential|parallel
    fnkit-gateway pipelines ls
    fnkit-gateway pipelines show NAME
    fnkit-gateway pipelines rm NAME

Pipeline commands resolve the store from flags, then `.fnkit-orchestrate.json`
in the working directory, then the `S3_*` environment variables.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from fnkit_gateway.config import DEFAULT_GATEWAY_PORT, DEFAULT_S3_REGION, StoreSettings, store_settings_from_env
from fnkit_gateway.errors import StoreFailure
from fnkit_gateway.pipeline.store import S3PipelineStore
from fnkit_gateway.schemas.pipeline import Pipeline, validation_message

logger = logging.getLogger("fnkit_gateway.cli")

ORCHESTRATE_CONFIG = ".fnkit-orchestrate.json"


def _configure_logging() -> None:
    level = (os.getenv("FNKIT_LOG_LEVEL") or "INFO").strip().upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _split_steps(raw: str) -> List[str]:
    return [s.strip() for s in (raw or "").split(",") if s.strip()]


def load_orchestrate_config(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise StoreFailure(f"Failed to parse {path.name}: {e}") from e
    return data if isinstance(data, dict) else {}


def resolve_store_settings(args: argparse.Namespace, config_path: Path) -> StoreSettings:
    cfg = load_orchestrate_config(config_path)
    return store_settings_from_env(
        bucket=getattr(args, "bucket", None) or cfg.get("bucket"),
        endpoint=getattr(args, "endpoint", None) or cfg.get("endpoint"),
        region=getattr(args, "region", None) or cfg.get("region"),
    )


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run(
        "fnkit_gateway.api.main:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level=(os.getenv("FNKIT_LOG_LEVEL") or "info").lower(),
    )
    return 0


def _cmd_pipelines_init(args: argparse.Namespace, config_path: Path) -> int:
    config: Dict[str, Any] = {"bucket": args.bucket, "region": args.region or DEFAULT_S3_REGION}
    if args.endpoint:
        config["endpoint"] = args.endpoint
    config_path.write_text(json.dumps(config, indent=2) + "\n", encoding="utf-8")
    print(f"Saved {config_path.name}")
    for k, v in config.items():
        print(f"  {k}: {v}")
    return 0


def _store_for(args: argparse.Namespace, config_path: Path) -> Optional[S3PipelineStore]:
    settings = resolve_store_settings(args, config_path)
    if not settings.bucket:
        logger.error("S3 bucket not configured for pipelines")
        print("Run: fnkit-gateway pipelines init --bucket <bucket> [--endpoint <url>]", file=sys.stderr)
        return None
    return S3PipelineStore(settings)


def _cmd_pipelines(args: argparse.Namespace) -> int:
    config_path = Path.cwd() / ORCHESTRATE_CONFIG
    if args.pipelines_cmd == "init":
        return _cmd_pipelines_init(args, config_path)

    if args.pipelines_cmd == "add":
        # The name becomes one path segment of /orchestrate/<name>.
        if not args.name or "/" in args.name:
            logger.error("Invalid pipeline name: %r", args.name)
            return 1
        try:
            pipeline = Pipeline.model_validate({"mode": (args.mode or "").lower(), "steps": _split_steps(args.steps)})
        except ValidationError as e:
            logger.error("Invalid pipeline %s: %s", args.name, validation_message(e))
            return 1

    store = _store_for(args, config_path)
    if store is None:
        return 1

    try:
        if args.pipelines_cmd == "add":
            store.put(args.name, pipeline)
            print(f"Uploaded pipeline: {args.name} ({pipeline.mode.value}: {', '.join(pipeline.steps)})")
        elif args.pipelines_cmd in {"ls", "list"}:
            names = store.list_names()
            if not names:
                print("No pipelines found in the bucket")
                return 0
            for name in names:
                print(f"  {name}")
            print(f"{len(names)} pipeline{'s' if len(names) != 1 else ''} configured")
        elif args.pipelines_cmd == "show":
            print(store.read(args.name).decode("utf-8", errors="replace"))
        elif args.pipelines_cmd in {"rm", "remove"}:
            store.delete(args.name)
            print(f"Removed pipeline: {args.name}")
    except StoreFailure as e:
        logger.error("%s", e.message)
        return 1
    return 0


def _add_store_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument("--bucket", default=None)
    p.add_argument("--endpoint", default=None)
    p.add_argument("--region", default=None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fnkit-gateway", description="fnkit API gateway and pipeline orchestrator")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the gateway")
    serve.add_argument("--host", default=os.getenv("FNKIT_GATEWAY_HOST") or "0.0.0.0")
    serve.add_argument("--port", type=int, default=int(os.getenv("FNKIT_GATEWAY_PORT") or DEFAULT_GATEWAY_PORT))
    serve.set_defaults(func=_cmd_serve)

    pipelines = sub.add_parser("pipelines", help="Manage pipeline definitions in object storage")
    psub = pipelines.add_subparsers(dest="pipelines_cmd", required=True)

    p_init = psub.add_parser("init", help=f"Write {ORCHESTRATE_CONFIG}")
    p_init.add_argument("--bucket", required=True)
    p_init.add_argument("--endpoint", default=None)
    p_init.add_argument("--region", default=None)

    p_add = psub.add_parser("add", help="Upload a pipeline definition")
    p_add.add_argument("name")
    p_add.add_argument("--steps", required=True, help="Comma-separated backend names")
    p_add.add_argument("--mode", required=True, type=str.lower, choices=["sequential", "parallel"])
    _add_store_flags(p_add)

    for cmd, aliases in (("ls", ["list"]), ("show", []), ("rm", ["remove"])):
        p = psub.add_parser(cmd, aliases=aliases)
        if cmd != "ls":
            p.add_argument("name")
        _add_store_flags(p)

    pipelines.set_defaults(func=_cmd_pipelines)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    _configure_logging()
    args = build_parser().parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
