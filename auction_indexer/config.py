import os
from typing import Any, Dict, List, Optional

from .events import DEED_ABI, REGISTRAR_ABI
from .util import load_json, log_message

# Legacy .eth auction registrar on mainnet.
DEFAULT_REGISTRAR_ADDRESS = "0x6090A6e47849629b7245Dfa1Ca21D94cd15878Ef"
DEFAULT_START_BLOCK = 3605331

DEFAULTS: Dict[str, Any] = {
    "rpc_http": None,
    "rpc_ws": None,
    "db_path": "./registrar.db",
    "registrar_address": DEFAULT_REGISTRAR_ADDRESS,
    "start_block": DEFAULT_START_BLOCK,
    "batch_size": 1000,
    "confirmations": 0,
    "reconnect_delay": 5,
    "poll_interval": 15,
    "abi_dir": None,
}

BUILTIN_ABIS = {
    "AuctionRegistrar": REGISTRAR_ABI,
    "Deed": DEED_ABI,
}


def load_config(path: Optional[str]) -> Dict[str, Any]:
    cfg = dict(DEFAULTS)
    if path:
        loaded = load_json(path)
        if not isinstance(loaded, dict):
            raise ValueError(f"Config {path} must be a JSON object")
        cfg.update(loaded)
    for key in ("start_block", "batch_size", "confirmations", "reconnect_delay", "poll_interval"):
        cfg[key] = int(cfg[key])
    if cfg["batch_size"] < 1:
        raise ValueError("batch_size must be at least 1")
    if cfg["confirmations"] < 0:
        raise ValueError("confirmations must not be negative")
    return cfg


def load_abi(name: str, abi_dir: Optional[str]) -> List[Dict[str, Any]]:
    """ABI for `name` from `abi_dir` if present there, else the built-in one."""
    abi_path = _find_abi_file(name, abi_dir) if abi_dir else None
    if abi_path:
        abi = _extract_abi(load_json(abi_path))
        if abi is None:
            raise ValueError(f"No ABI found in {abi_path}")
        return abi
    if abi_dir:
        log_message(f"WARN: ABI not found for {name} in {abi_dir}, using built-in")
    return BUILTIN_ABIS[name]


def _extract_abi(abi_json: Any) -> Optional[List[Dict[str, Any]]]:
    if isinstance(abi_json, list):
        return abi_json
    if isinstance(abi_json, dict) and "abi" in abi_json:
        return abi_json.get("abi")
    return None


def _find_abi_file(contract_name: str, abi_dir: str) -> Optional[str]:
    if not os.path.exists(abi_dir):
        return None
    for candidate in (f"{contract_name}.json", f"{contract_name}.abi.json"):
        direct = os.path.join(abi_dir, candidate)
        if os.path.exists(direct):
            return direct

    for root, _dirs, files in os.walk(abi_dir):
        for filename in files:
            if filename == f"{contract_name}.json":
                return os.path.join(root, filename)
    return None
