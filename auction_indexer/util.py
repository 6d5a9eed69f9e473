import json
import sys
import time
from typing import Any, Dict

from hexbytes import HexBytes
from web3 import Web3

VERBOSE = False


def log_message(msg: str) -> None:
    ts = time.strftime("%Y-%m-%d %H:%M:%S", time.gmtime())
    sys.stderr.write(f"[{ts} UTC] {msg}\n")
    sys.stderr.flush()


def debug(msg: str) -> None:
    if VERBOSE:
        log_message(f"DEBUG: {msg}")


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()
    if isinstance(obj, set):
        return list(obj)
    return str(obj)


def json_dumps(obj: Any) -> str:
    return json.dumps(obj, default=_json_default, ensure_ascii=True)


def load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def parse_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if value.startswith("0x"):
            return int(value, 16)
        return int(value)
    return int(value)


def normalize_log(log: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce a JSON-RPC log (hex strings) into the shape web3 decoders expect."""
    out = dict(log)
    if isinstance(out.get("transactionHash"), str):
        out["transactionHash"] = HexBytes(out["transactionHash"])
    if isinstance(out.get("data"), str):
        out["data"] = HexBytes(out["data"])
    if isinstance(out.get("topics"), list):
        out["topics"] = [HexBytes(t) if isinstance(t, str) else t for t in out["topics"]]
    for key in ("blockNumber", "transactionIndex", "logIndex"):
        if key in out and out[key] is not None:
            out[key] = parse_int(out[key])
    if "address" in out and isinstance(out["address"], str):
        out["address"] = Web3.to_checksum_address(out["address"])
    return out
