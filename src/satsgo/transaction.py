"""
Parsing of finalized transactions returned by the wallet.

The wallet hands back either a plain serialized transaction or a BEEF
envelope (BRC-62 V1, BRC-96 V2, optionally wrapped as BRC-95 Atomic BEEF)
carrying the transaction together with its ancestors. Only the outputs of
the subject transaction matter here, so merkle paths are skipped, not
verified.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from satsgo.errors import TransactionParseError

BEEF_V1 = bytes.fromhex("0100beef")
BEEF_V2 = bytes.fromhex("0200beef")
ATOMIC_BEEF = bytes.fromhex("01010101")

# BEEF V2 per-transaction format bytes
_RAW_TX = 0
_RAW_TX_AND_BUMP_INDEX = 1
_TXID_ONLY = 2


@dataclass
class TxInput:
    txid_le: bytes
    vout: int
    script: bytes
    sequence: bytes


@dataclass
class TxOutput:
    value: int
    script: bytes


@dataclass
class Transaction:
    version: bytes
    inputs: list[TxInput]
    outputs: list[TxOutput]
    locktime: bytes
    raw: bytes

    @property
    def txid(self) -> str:
        return hash256(self.raw)[::-1].hex()


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    first = data[offset]
    offset += 1

    if first < 0xFD:
        return first, offset
    if first == 0xFD:
        value = int.from_bytes(data[offset : offset + 2], "little")
        return value, offset + 2
    if first == 0xFE:
        value = int.from_bytes(data[offset : offset + 4], "little")
        return value, offset + 4
    value = int.from_bytes(data[offset : offset + 8], "little")
    return value, offset + 8


def encode_varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + value.to_bytes(2, "little")
    if value <= 0xFFFFFFFF:
        return b"\xfe" + value.to_bytes(4, "little")
    return b"\xff" + value.to_bytes(8, "little")


def _take(data: bytes, offset: int, length: int) -> tuple[bytes, int]:
    end = offset + length
    if end > len(data):
        raise TransactionParseError(f"Unexpected end of data at offset {offset}")
    return data[offset:end], end


def parse_transaction(data: bytes, offset: int = 0) -> tuple[Transaction, int]:
    """
    Parse one serialized transaction starting at ``offset``.

    Returns the transaction and the offset just past it.
    """
    try:
        start = offset
        version, offset = _take(data, offset, 4)

        input_count, offset = read_varint(data, offset)
        inputs: list[TxInput] = []
        for _ in range(input_count):
            txid_le, offset = _take(data, offset, 32)
            vout_bytes, offset = _take(data, offset, 4)
            script_len, offset = read_varint(data, offset)
            script, offset = _take(data, offset, script_len)
            sequence, offset = _take(data, offset, 4)
            inputs.append(TxInput(txid_le, int.from_bytes(vout_bytes, "little"), script, sequence))

        output_count, offset = read_varint(data, offset)
        outputs: list[TxOutput] = []
        for _ in range(output_count):
            value_bytes, offset = _take(data, offset, 8)
            script_len, offset = read_varint(data, offset)
            script, offset = _take(data, offset, script_len)
            outputs.append(TxOutput(int.from_bytes(value_bytes, "little"), script))

        locktime, offset = _take(data, offset, 4)
    except IndexError as e:
        raise TransactionParseError(f"Failed to parse transaction: {e}") from e

    return Transaction(version, inputs, outputs, locktime, data[start:offset]), offset


def _skip_bumps(data: bytes, offset: int) -> int:
    bump_count, offset = read_varint(data, offset)
    for _ in range(bump_count):
        _block_height, offset = read_varint(data, offset)
        tree_height, offset = _take(data, offset, 1)
        for _level in range(tree_height[0]):
            leaf_count, offset = read_varint(data, offset)
            for _ in range(leaf_count):
                _leaf_offset, offset = read_varint(data, offset)
                flags, offset = _take(data, offset, 1)
                if not flags[0] & 0x01:  # duplicate leaves carry no hash
                    _hash, offset = _take(data, offset, 32)
    return offset


def parse_beef(data: bytes, subject_txid: str | None = None) -> Transaction:
    """
    Extract the subject transaction from a BEEF envelope.

    The subject is the transaction matching ``subject_txid`` when given,
    otherwise the last transaction in the envelope.
    """
    try:
        magic, offset = _take(data, 0, 4)
        if magic not in (BEEF_V1, BEEF_V2):
            raise TransactionParseError(f"Unknown BEEF version {magic.hex()}")
        is_v2 = magic == BEEF_V2

        offset = _skip_bumps(data, offset)

        tx_count, offset = read_varint(data, offset)
        transactions: list[Transaction] = []
        for _ in range(tx_count):
            if is_v2:
                fmt, offset = _take(data, offset, 1)
                if fmt[0] == _TXID_ONLY:
                    _txid, offset = _take(data, offset, 32)
                    continue
                tx, offset = parse_transaction(data, offset)
                if fmt[0] == _RAW_TX_AND_BUMP_INDEX:
                    _bump_index, offset = read_varint(data, offset)
                elif fmt[0] != _RAW_TX:
                    raise TransactionParseError(f"Unknown BEEF transaction format {fmt[0]}")
            else:
                tx, offset = parse_transaction(data, offset)
                has_bump, offset = _take(data, offset, 1)
                if has_bump[0]:
                    _bump_index, offset = read_varint(data, offset)
            transactions.append(tx)
    except IndexError as e:
        raise TransactionParseError(f"Failed to parse BEEF: {e}") from e

    if not transactions:
        raise TransactionParseError("BEEF contains no full transactions")

    if subject_txid is None:
        return transactions[-1]

    # Encoders disagree on the byte order of the atomic txid
    wanted = {subject_txid, bytes.fromhex(subject_txid)[::-1].hex()}
    for tx in transactions:
        if tx.txid in wanted:
            return tx
    raise TransactionParseError(f"Subject transaction {subject_txid} not found in BEEF")


def parse_finalized_transaction(data: bytes | bytearray | list[int]) -> Transaction:
    """Parse Atomic BEEF, BEEF or a raw transaction, returning the subject transaction."""
    data = bytes(data)
    if len(data) < 4:
        raise TransactionParseError("Transaction data too short")

    prefix = data[:4]
    if prefix == ATOMIC_BEEF:
        txid_be, _ = _take(data, 4, 32)
        return parse_beef(data[36:], subject_txid=txid_be.hex())
    if prefix in (BEEF_V1, BEEF_V2):
        return parse_beef(data)

    tx, end = parse_transaction(data)
    if end != len(data):
        raise TransactionParseError(f"Trailing bytes after transaction: {len(data) - end}")
    return tx
