"""Hex/byte helpers and the domain hash used at finalisation."""

from typing import Union

from hexbytes import HexBytes
from web3 import Web3

HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


class MalformedHexError(ValueError):
    pass


def hex_to_bytes(value: str) -> bytes:
    """Decode a hex string (with or without 0x) into raw bytes.

    Odd-length or non-hex input raises instead of being padded.
    """
    if not isinstance(value, str):
        raise MalformedHexError(f"Expected hex string, got {type(value).__name__}")
    digits = value[2:] if value[:2] in ("0x", "0X") else value
    if len(digits) % 2 != 0:
        raise MalformedHexError(f"Hex string must have an even number of characters: {value!r}")
    if any(ch not in HEX_DIGITS for ch in digits):
        raise MalformedHexError(f"Invalid hex characters in {value!r}")
    return bytes.fromhex(digits)


def to_bytes(value: Union[str, bytes, bytearray]) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return hex_to_bytes(value)


def to_hex(value: Union[str, bytes, bytearray]) -> str:
    """Canonical entity key: lowercase, 0x-prefixed hex."""
    return "0x" + to_bytes(value).hex()


def concat(*parts: Union[str, bytes, bytearray]) -> bytes:
    return b"".join(to_bytes(part) for part in parts)


def keccak256(data: Union[str, bytes, bytearray]) -> HexBytes:
    return Web3.keccak(to_bytes(data))


# namehash("eth")
ROOT_NODE = hex_to_bytes("93cdeb708b7545dc668eb9280176169d1c33cfd8ed6f04690a0bcc88a93fc4ae")


def domain_hash(label_hash: Union[str, bytes, bytearray], root_node: bytes = ROOT_NODE) -> str:
    """keccak256(root_node || label_hash) as lowercase 0x hex."""
    label = to_bytes(label_hash)
    if len(label) != 32:
        raise MalformedHexError(f"Label hash must be 32 bytes, got {len(label)}")
    return to_hex(keccak256(concat(root_node, label)))
