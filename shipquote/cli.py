"""
运费报价 CLI

所有命令输出结构化 JSON，方便脚本或 Agent 解析结果。

用法:
    shipquote quote --action single --request request.json
    shipquote quote --action multi --request request.yaml --strategy SAME_PROVIDER
    shipquote quote --action validate --request request.json
    shipquote quote --action providers
    shipquote quote --action connectivity
    shipquote shipment --action transition --from PENDING --to LABEL_CREATED
    shipquote shipment --action statuses
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import yaml


def _json_out(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _load_request_file(path: str) -> dict[str, Any]:
    file_path = Path(path)
    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Request file must contain a mapping: {path}")
    return data


async def cmd_quote(args: argparse.Namespace) -> None:
    from shipquote.core.error_handler import QuoteValidationError
    from shipquote.modules.quote import QuoteRequest, ShippingQuoteService

    action = args.action
    service = ShippingQuoteService()

    if action == "providers":
        _json_out({"providers": service.get_provider_status()})
        return

    if action == "connectivity":
        _json_out({"connectivity": await service.test_provider_connectivity()})
        return

    if not args.request:
        _json_out({"error": "Specify --request <file.json|file.yaml>"})
        return

    request = QuoteRequest.from_dict(_load_request_file(args.request))

    if action == "validate":
        _json_out(service.validate_request(request).to_dict())
        return

    try:
        if action == "single":
            result = await service.compute_single_vendor_quote(request)
        elif action == "multi":
            result = await service.compute_multi_vendor_quote(request, strategy=args.strategy)
        else:
            _json_out({"error": f"Unknown quote action: {action}"})
            return
    except QuoteValidationError as e:
        _json_out({"error": e.message, "errors": e.errors})
        return

    _json_out(result.to_dict())


async def cmd_shipment(args: argparse.Namespace) -> None:
    from shipquote.modules.shipment import VALID_TRANSITIONS, ShipmentStatus, is_valid_transition

    action = args.action

    if action == "statuses":
        _json_out(
            {
                status.value: {
                    "is_final": status.is_final,
                    "is_active": status.is_active,
                    "next": sorted(item.value for item in VALID_TRANSITIONS[status]),
                }
                for status in ShipmentStatus
            }
        )
        return

    if action == "transition":
        if not args.from_status or not args.to_status:
            _json_out({"error": "Specify --from and --to"})
            return
        _json_out(
            {
                "from": args.from_status.upper(),
                "to": args.to_status.upper(),
                "valid": is_valid_transition(args.from_status, args.to_status),
            }
        )
        return

    _json_out({"error": f"Unknown shipment action: {action}"})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shipquote",
        description="多承运商运费报价 CLI",
    )
    sub = parser.add_subparsers(dest="command", help="可用命令")

    # quote
    p = sub.add_parser("quote", help="运费报价")
    p.add_argument(
        "--action",
        required=True,
        choices=["single", "multi", "validate", "providers", "connectivity"],
    )
    p.add_argument("--request", default=None, help="报价请求文件（JSON / YAML）")
    p.add_argument(
        "--strategy",
        default=None,
        choices=["CHEAPEST_EACH", "SAME_PROVIDER", "MIXED_PROVIDERS"],
        help="多商家合并策略（multi）",
    )

    # shipment
    p = sub.add_parser("shipment", help="运单状态")
    p.add_argument("--action", required=True, choices=["transition", "statuses"])
    p.add_argument("--from", dest="from_status", default=None, help="当前状态")
    p.add_argument("--to", dest="to_status", default=None, help="目标状态")

    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    dispatch = {
        "quote": cmd_quote,
        "shipment": cmd_shipment,
    }

    handler = dispatch.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(handler(args))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        _json_out({"error": str(e)})
        sys.exit(1)


if __name__ == "__main__":
    main()
