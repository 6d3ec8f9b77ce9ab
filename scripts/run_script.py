from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime
from pathlib import Path

from toolkit_api.app.consumer import ScriptStreamConsumer
from toolkit_api.app.models import LogEvent, ToolkitConfig

_LEVEL_MARKERS = {"info": "-", "success": "+", "warn": "!", "error": "x"}


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a toolkit script and follow its progress.")
    parser.add_argument("workflow_id", help="Script id, for example enable-fido2.")
    parser.add_argument("--server", default="http://127.0.0.1:8000", help="Toolkit API base URL.")
    parser.add_argument("--org-url", default=os.getenv("OKTA_ORG_URL", ""), help="Org base URL.")
    parser.add_argument(
        "--api-token",
        default=os.getenv("OKTA_API_TOKEN", ""),
        help="Management API token (defaults to $OKTA_API_TOKEN).",
    )
    parser.add_argument("--client-id", default=os.getenv("OKTA_CLIENT_ID"), help="OAuth service app client id.")
    parser.add_argument("--key-id", default=os.getenv("OKTA_KEY_ID"), help="Key id (kid) of the signing key.")
    parser.add_argument(
        "--private-key-file",
        type=Path,
        default=None,
        help="File holding the private key as PEM or JWK JSON.",
    )
    parser.add_argument(
        "--input",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Script input; repeat a name to pass a list.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the final result as JSON instead of a summary line.",
    )
    return parser.parse_args()


def _parse_inputs(raw_inputs: list[str]) -> dict[str, str | list[str]]:
    inputs: dict[str, str | list[str]] = {}
    for raw in raw_inputs:
        name, sep, value = raw.partition("=")
        if not sep or not name.strip():
            raise SystemExit(f"--input expects NAME=VALUE, got {raw!r}")
        name = name.strip()
        current = inputs.get(name)
        if current is None:
            inputs[name] = value
        elif isinstance(current, list):
            current.append(value)
        else:
            inputs[name] = [current, value]
    return inputs


def _print_event(event: LogEvent) -> None:
    stamp = datetime.fromtimestamp(event.timestamp / 1000).strftime("%H:%M:%S")
    step = f"[{event.step}] " if event.step else ""
    print(f"{stamp} {_LEVEL_MARKERS.get(event.level, '?')} {step}{event.message}", flush=True)


def main() -> None:
    args = _parse_args()
    private_key = args.private_key_file.read_text(encoding="utf-8") if args.private_key_file else None
    config = ToolkitConfig(
        org_url=args.org_url,
        api_token=args.api_token,
        client_id=args.client_id,
        private_key=private_key,
        key_id=args.key_id,
    )

    consumer = ScriptStreamConsumer(args.server, on_event=_print_event)
    try:
        snapshot = consumer.run(args.workflow_id, config, _parse_inputs(args.input))
    except KeyboardInterrupt:
        consumer.cancel()
        print("Cancelled.", file=sys.stderr)
        raise SystemExit(130) from None

    if snapshot.state == "errored":
        print(f"Error: {snapshot.error}", file=sys.stderr)
        raise SystemExit(2)
    result = snapshot.result
    if result is None:
        raise SystemExit(2)
    if args.json:
        print(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))
    else:
        print(("OK: " if result.success else "FAILED: ") + result.message)
    raise SystemExit(0 if result.success else 1)


if __name__ == "__main__":
    main()
