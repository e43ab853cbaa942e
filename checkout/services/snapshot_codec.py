# checkout/services/snapshot_codec.py
import json
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Mapping, Optional, Tuple

from checkout.domain.errors import SnapshotTooLargeError
from checkout.domain.pricing import compute_pricing
from checkout.domain.snapshot import (
    CartSnapshot,
    DecodedSnapshot,
    PricingBreakdown,
    SnapshotLayout,
    SnapshotLine,
)
from checkout.utils.settings import METADATA_KEY_LIMIT, METADATA_MAX_KEYS, METADATA_VALUE_LIMIT
from checkout.utils.logging import get_logger

logger = get_logger(__name__)

ITEM_COUNT_KEY = "item_count"
BLOB_KEY = "snapshot"
CHUNK_COUNT_KEY = "snapshot_chunks"
PRICING_KEYS = ("subtotal", "shipping", "tax", "total")


def _item_key(index: int, field: str) -> str:
    return f"item_{index}_{field}"


def _chunk_key(index: int) -> str:
    return f"snapshot_{index}"


class SnapshotCodec:
    """
    Koduje snapshot koszyka do metadata autoryzacji (lista par klucz/wartosc).

    Najpierw uklad per-item (item_i_id, item_i_name, item_i_price, item_i_qty,
    item_i_variant + item_count). Jesli nie miesci sie w limicie kluczy albo
    wartosci - jeden blob JSON pod `snapshot`, a gdy i on jest za dlugi,
    kawalki snapshot_0..n-1 z licznikiem snapshot_chunks.
    """

    def __init__(
        self,
        value_limit: int = METADATA_VALUE_LIMIT,
        max_keys: int = METADATA_MAX_KEYS,
        key_limit: int = METADATA_KEY_LIMIT,
    ):
        self.value_limit = value_limit
        self.max_keys = max_keys
        self.key_limit = key_limit

    # =====================================================
    # ENCODE
    # =====================================================
    def encode(self, snapshot: CartSnapshot) -> List[Tuple[str, str]]:
        if not snapshot.lines:
            raise SnapshotTooLargeError("Pusty snapshot nie moze byc zakodowany")

        header = self._header(snapshot)

        per_item = self.encode_per_item(snapshot, header)
        if per_item is not None:
            return per_item

        logger.info(
            f"Snapshot with {snapshot.item_count} lines does not fit per-item keys, using blob layout"
        )
        return self.encode_blob(snapshot, header)

    def encode_per_item(
        self, snapshot: CartSnapshot, header: Optional[List[Tuple[str, str]]] = None
    ) -> Optional[List[Tuple[str, str]]]:
        """Zwraca None gdy uklad per-item nie miesci sie w budzecie."""
        header = header if header is not None else self._header(snapshot)
        chunks = [(ITEM_COUNT_KEY, str(snapshot.item_count))] + header

        for i, line in enumerate(snapshot.lines):
            chunks.append((_item_key(i, "id"), str(line.product_id)))
            chunks.append((_item_key(i, "name"), line.name))
            chunks.append((_item_key(i, "price"), str(line.unit_price)))
            chunks.append((_item_key(i, "qty"), str(line.quantity)))
            if line.variant_id is not None:
                chunks.append((_item_key(i, "variant"), str(line.variant_id)))

        if not self._fits(chunks):
            return None
        return chunks

    def encode_blob(
        self, snapshot: CartSnapshot, header: Optional[List[Tuple[str, str]]] = None
    ) -> List[Tuple[str, str]]:
        header = header if header is not None else self._header(snapshot)
        blob = json.dumps(
            [
                [line.product_id, line.variant_id, line.quantity, str(line.unit_price), line.name]
                for line in snapshot.lines
            ],
            separators=(",", ":"),
            ensure_ascii=False,
        )

        if len(blob) <= self.value_limit:
            chunks = header + [(BLOB_KEY, blob)]
        else:
            pieces = [blob[i:i + self.value_limit] for i in range(0, len(blob), self.value_limit)]
            chunks = header + [(CHUNK_COUNT_KEY, str(len(pieces)))]
            chunks += [(_chunk_key(i), piece) for i, piece in enumerate(pieces)]

        if not self._fits(chunks):
            raise SnapshotTooLargeError(
                f"Snapshot z {snapshot.item_count} pozycjami nie miesci sie w metadata "
                f"({len(chunks)} kluczy, limit {self.max_keys})"
            )
        return chunks

    def _header(self, snapshot: CartSnapshot) -> List[Tuple[str, str]]:
        pricing = snapshot.pricing
        header = [
            ("subtotal", str(pricing.subtotal)),
            ("shipping", str(pricing.shipping)),
            ("tax", str(pricing.tax)),
            ("total", str(pricing.total)),
        ]
        if snapshot.cart_id is not None:
            header.append(("cart_id", str(snapshot.cart_id)))
        if snapshot.account_id is not None:
            header.append(("account_id", str(snapshot.account_id)))
        if snapshot.shipping_address_id is not None:
            header.append(("shipping_address_id", snapshot.shipping_address_id))
        return header

    def _fits(self, chunks: List[Tuple[str, str]]) -> bool:
        if len(chunks) > self.max_keys:
            return False
        return all(len(k) <= self.key_limit and len(v) <= self.value_limit for k, v in chunks)

    # =====================================================
    # DECODE
    # =====================================================
    def decode(self, metadata: Optional[Mapping[str, str]]) -> DecodedSnapshot:
        """Kolejnosc: per-item, pojedynczy blob, kawalki. Nigdy nie rzuca."""
        metadata = dict(metadata or {})
        cart_id = _parse_int(metadata.get("cart_id"))
        account_id = _parse_int(metadata.get("account_id"))
        problems: List[str] = []

        for layout, reader in (
            (SnapshotLayout.PER_ITEM, self._read_per_item),
            (SnapshotLayout.BLOB, self._read_blob),
            (SnapshotLayout.CHUNKED, self._read_chunked),
        ):
            lines, problem = reader(metadata)
            if problem:
                problems.append(f"{layout.value}: {problem}")
            if lines:
                snapshot = CartSnapshot(
                    lines=tuple(lines),
                    pricing=self._read_pricing(metadata, lines),
                    cart_id=cart_id,
                    account_id=account_id,
                    shipping_address_id=metadata.get("shipping_address_id"),
                )
                return DecodedSnapshot(
                    layout=layout,
                    snapshot=snapshot,
                    cart_id=cart_id,
                    account_id=account_id,
                    problems=tuple(problems),
                )

        return DecodedSnapshot(
            layout=SnapshotLayout.UNAVAILABLE,
            cart_id=cart_id,
            account_id=account_id,
            problems=tuple(problems),
        )

    def _read_per_item(self, metadata: Dict[str, str]):
        if ITEM_COUNT_KEY not in metadata:
            return [], None

        count = _parse_int(metadata.get(ITEM_COUNT_KEY))
        if count is None or count < 1:
            return [], f"invalid item_count {metadata.get(ITEM_COUNT_KEY)!r}"

        lines = []
        for i in range(count):
            product_id = _parse_int(metadata.get(_item_key(i, "id")))
            quantity = _parse_int(metadata.get(_item_key(i, "qty")))
            price = _parse_decimal(metadata.get(_item_key(i, "price")))
            if product_id is None or quantity is None or quantity < 1 or price is None:
                # bez id/ilosci/ceny pozycji nie da sie odtworzyc
                return [], f"line {i} is missing id, qty or price"

            variant_raw = metadata.get(_item_key(i, "variant"))
            variant_id = _parse_int(variant_raw)
            if variant_raw is not None and variant_id is None:
                return [], f"line {i} has invalid variant {variant_raw!r}"

            name = metadata.get(_item_key(i, "name"))
            if name is None:
                logger.warning(f"Snapshot line {i} has no name, using placeholder")
                name = f"Product {product_id}"

            lines.append(
                SnapshotLine(
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity=quantity,
                    unit_price=price,
                    name=name,
                )
            )
        return lines, None

    def _read_blob(self, metadata: Dict[str, str]):
        if BLOB_KEY not in metadata:
            return [], None
        return _parse_blob(metadata[BLOB_KEY])

    def _read_chunked(self, metadata: Dict[str, str]):
        if CHUNK_COUNT_KEY not in metadata:
            return [], None

        count = _parse_int(metadata.get(CHUNK_COUNT_KEY))
        if count is None or count < 1:
            return [], f"invalid snapshot_chunks {metadata.get(CHUNK_COUNT_KEY)!r}"

        pieces = []
        for i in range(count):
            piece = metadata.get(_chunk_key(i))
            if piece is None:
                return [], f"chunk {i} of {count} is missing"
            pieces.append(piece)
        return _parse_blob("".join(pieces))

    def _read_pricing(self, metadata: Dict[str, str], lines: List[SnapshotLine]) -> PricingBreakdown:
        values = [_parse_decimal(metadata.get(key)) for key in PRICING_KEYS]
        if all(v is not None for v in values):
            return PricingBreakdown(*values)

        logger.warning("Pricing keys missing from metadata, recomputing from snapshot lines")
        return compute_pricing((line.unit_price, line.quantity) for line in lines)


def _parse_blob(raw: str):
    try:
        rows = json.loads(raw)
        lines = [
            SnapshotLine(
                product_id=int(row[0]),
                variant_id=None if row[1] is None else int(row[1]),
                quantity=int(row[2]),
                unit_price=Decimal(row[3]),
                name=str(row[4]),
            )
            for row in rows
        ]
    except (ValueError, TypeError, IndexError, KeyError, InvalidOperation) as e:
        return [], f"unparseable blob ({e})"

    if any(line.quantity < 1 for line in lines):
        return [], "blob contains non-positive quantity"
    return lines, None


def _parse_int(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _parse_decimal(raw: Optional[str]) -> Optional[Decimal]:
    if raw is None:
        return None
    try:
        value = Decimal(raw)
    except (InvalidOperation, TypeError, ValueError):
        return None
    return value if value.is_finite() else None
