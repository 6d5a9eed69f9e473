"""Ordered event feed for the projector.

Logs are pulled over HTTP in block ranges: registrar logs by address, deed
logs by topic (deed contracts are created per bid, so their addresses are not
known up front). Each batch is merged, sorted by (blockNumber, logIndex) and
applied one event at a time. A websocket `newHeads` subscription, or plain
polling when no websocket endpoint is configured, triggers the next catch-up.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import Web3RPCError
import websockets
from websockets.exceptions import WebSocketException

from .config import load_abi
from .events import EventDecoder
from .gateway import ContractGateway
from .projector import AuctionProjector
from .store import EntityStore
from .util import log_message, normalize_log


class RegistrarIndexer:
    def __init__(
        self,
        config: Dict[str, Any],
        w3: Optional[Any] = None,
        store: Optional[EntityStore] = None,
        gateway: Optional[Any] = None,
    ):
        self.config = config
        self.rpc_ws = config.get("rpc_ws")
        self.rpc_http = config.get("rpc_http")
        self.registrar_address = Web3.to_checksum_address(config["registrar_address"])
        self.start_block = int(config.get("start_block", 0))
        self.batch_size = int(config.get("batch_size", 1000))
        self.confirmations = int(config.get("confirmations", 0))
        self.reconnect_delay = int(config.get("reconnect_delay", 5))
        self.poll_interval = int(config.get("poll_interval", 15))

        self.w3_http = w3 or (Web3(Web3.HTTPProvider(self.rpc_http)) if self.rpc_http else None)
        if self.w3_http is None:
            raise RuntimeError("rpc_http is required for log fetching and contract calls")

        abi_dir = config.get("abi_dir")
        registrar_abi = load_abi("AuctionRegistrar", abi_dir)
        deed_abi = load_abi("Deed", abi_dir)
        self.decoder = EventDecoder(self.w3_http.codec, registrar_abi, deed_abi)
        self.store = store or EntityStore(config.get("db_path", "./registrar.db"))
        self.gateway = gateway or ContractGateway(self.w3_http, registrar_abi)
        self.projector = AuctionProjector(self.store, self.gateway)

        # Events are applied strictly one at a time.
        self.lock = asyncio.Lock()
        self.last_processed_block, self.last_processed_timestamp = self.store.get_sync_state()
        self._block_ts_cache: Dict[int, int] = {}
        self._ws_id = 0

    async def start(self) -> None:
        await self.backfill_missed_blocks()
        if self.rpc_ws:
            await self.subscribe_to_heads()
        else:
            await self.poll_loop()

    def target_block(self) -> int:
        return max(self.w3_http.eth.block_number - self.confirmations, 0)

    async def backfill_missed_blocks(self) -> None:
        last = self.last_processed_block if self.last_processed_block is not None else self.start_block - 1
        from_block = max(last + 1, self.start_block)
        to_block = self.target_block()
        if from_block > to_block:
            return
        await self.backfill_range(from_block, to_block)

    async def backfill_range(self, from_block: int, to_block: int) -> None:
        current = from_block
        batch_size = self.batch_size

        while current <= to_block:
            batch_to = min(current + batch_size - 1, to_block)
            try:
                logs = self._fetch_logs(current, batch_to)
            except (ValueError, Web3RPCError) as exc:
                msg = str(exc).lower()
                if batch_size <= 1:
                    raise
                if "query returned more than" in msg or "too many" in msg:
                    batch_size = max(batch_size // 2, 1)
                    log_message(
                        f"WARN: get_logs too large ({current}-{batch_to}), reducing batch size to {batch_size}"
                    )
                    continue
                raise

            async with self.lock:
                applied = 0
                for log in logs:
                    if await self.process_log(log):
                        applied += 1
                batch_ts = await self._get_block_timestamp(batch_to)
                self.store.update_sync_state(batch_to, batch_ts)
                self.last_processed_block = batch_to
                self.last_processed_timestamp = batch_ts
                self._trim_block_ts_cache(batch_to)
            if applied:
                log_message(f"Blocks {current}-{batch_to}: applied {applied} events")
            current = batch_to + 1

    def _fetch_logs(self, from_block: int, to_block: int) -> List[Dict[str, Any]]:
        registrar_logs = self.w3_http.eth.get_logs(
            {"fromBlock": from_block, "toBlock": to_block, "address": self.registrar_address}
        )
        deed_logs = self.w3_http.eth.get_logs(
            {"fromBlock": from_block, "toBlock": to_block, "topics": [self.decoder.deed_topic_list]}
        )
        merged: Dict[Tuple[str, int], Dict[str, Any]] = {}
        for raw in list(registrar_logs) + list(deed_logs):
            log = normalize_log(raw)
            merged[(HexBytes(log["transactionHash"]).hex(), log["logIndex"])] = log
        return sorted(merged.values(), key=lambda x: (x.get("blockNumber", 0), x.get("logIndex", 0)))

    async def process_log(self, log: Dict[str, Any]) -> bool:
        """Decode and apply one log; False if it was skipped."""
        if log.get("removed"):
            log_message(f"WARN: ignoring removed log {log.get('transactionHash')}:{log.get('logIndex')}")
            return False
        event = self.decoder.decode(log, self.registrar_address)
        if event is None:
            return False
        event.context.block_timestamp = await self._get_block_timestamp(event.context.block_number)
        return self.projector.apply(event)

    async def _get_block_timestamp(self, block_number: Optional[int]) -> Optional[int]:
        if block_number is None:
            return None
        if block_number in self._block_ts_cache:
            return self._block_ts_cache[block_number]
        block = self.w3_http.eth.get_block(block_number)
        ts = block.get("timestamp")
        self._block_ts_cache[block_number] = ts
        return ts

    def _trim_block_ts_cache(self, through_block: int) -> None:
        for number in [n for n in self._block_ts_cache if n <= through_block]:
            del self._block_ts_cache[number]

    async def poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.backfill_missed_blocks()

    async def subscribe_to_heads(self) -> None:
        backoff = max(self.reconnect_delay, 1)
        max_backoff = 60

        while True:
            try:
                await self.backfill_missed_blocks()
                async with websockets.connect(self.rpc_ws, ping_interval=20, ping_timeout=20) as ws:
                    log_message("Websocket connected, subscribing to new heads...")
                    sub_id = await self._ws_subscribe(ws)
                    log_message(f"Subscribed: {sub_id}")
                    backoff = max(self.reconnect_delay, 1)

                    async for message in ws:
                        payload = json.loads(message)
                        if payload.get("method") == "eth_subscription":
                            await self.backfill_missed_blocks()
                        elif payload.get("id") is not None and payload.get("error"):
                            log_message(f"WS error: {payload}")
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                log_message(f"Websocket error: {exc}")
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, max_backoff)

    async def _ws_subscribe(self, ws: Any) -> str:
        self._ws_id += 1
        req_id = self._ws_id
        payload = {
            "jsonrpc": "2.0",
            "id": req_id,
            "method": "eth_subscribe",
            "params": ["newHeads"],
        }
        await ws.send(json.dumps(payload))

        while True:
            data = json.loads(await ws.recv())
            if data.get("id") == req_id:
                if "result" in data:
                    return data["result"]
                raise RuntimeError(f"Subscribe failed: {data}")
