from typing import Any, Dict, List, Optional

from web3 import Web3

from .codec import to_bytes
from .events import REGISTRAR_ABI


class ContractGateway:
    """Read-only calls against the registrar, pinned to the event's block."""

    def __init__(self, w3: Web3, registrar_abi: Optional[List[Dict[str, Any]]] = None):
        self.w3 = w3
        self.registrar_abi = registrar_abi or REGISTRAR_ABI
        self._contracts: Dict[str, Any] = {}

    def _registrar(self, address: str) -> Any:
        checksum = Web3.to_checksum_address(address)
        if checksum not in self._contracts:
            self._contracts[checksum] = self.w3.eth.contract(address=checksum, abi=self.registrar_abi)
        return self._contracts[checksum]

    def deed_address(self, registrar_address: str, label_hash: str, block_number: Optional[int] = None) -> str:
        """Deed contract currently holding the highest bid for `label_hash`."""
        registrar = self._registrar(registrar_address)
        block_identifier = block_number if block_number is not None else "latest"
        entry = registrar.functions.entries(to_bytes(label_hash)).call(block_identifier=block_identifier)
        return str(entry[1]).lower()
