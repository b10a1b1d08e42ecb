"""Supplier routing for spare-part orders.

Resolution order:
1. Brand group: a manufacturer (or supplier name) from the brand group always
   routes to the group's dedicated supplier.
2. Exact, case-insensitive supplier name match.
3. Word-overlap match: any token of one name contains, or is contained by,
   a token of the other.
4. Unresolved.
"""

import re
import threading
from dataclasses import dataclass
from typing import List, Optional, Tuple

from app.config.models import SupplierEntry, SuppliersConfig
from app.logging import get_logger

logger = get_logger(__name__, component="suppliers")

RULE_BRAND_GROUP = "brand_group"
RULE_EXACT = "exact"
RULE_PARTIAL = "partial"
RULE_UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class SupplierMatch:
    """Result of routing a part order to a supplier."""

    requested_name: Optional[str]
    rule: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def resolved(self) -> bool:
        """True when there is an address to notify."""
        return bool(self.email or self.phone)

    def as_dict(self) -> dict:
        return {
            "requested_name": self.requested_name,
            "rule": self.rule,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
        }


@dataclass(frozen=True)
class _RoutingTable:
    group_name: str
    group_brands: Tuple[str, ...]
    group_supplier: Optional[SupplierEntry]
    suppliers: Tuple[SupplierEntry, ...]


def _tokens(name: str) -> List[str]:
    return re.findall(r"\w+", name.lower())


def _normalize(name: Optional[str]) -> str:
    return " ".join(_tokens(name or ""))


def _build_table(config: SuppliersConfig) -> _RoutingTable:
    group = config.brand_group
    return _RoutingTable(
        group_name=group.name,
        group_brands=tuple(_normalize(brand) for brand in group.brands),
        group_supplier=group.supplier,
        suppliers=tuple(config.suppliers),
    )


class SupplierRouter:
    """Resolves supplier names against the configured supplier table.

    The table is read-mostly; ``replace_table`` swaps it atomically and any
    resolution already running keeps the table it started with.
    """

    def __init__(self, config: Optional[SuppliersConfig] = None):
        self._lock = threading.Lock()
        self._table = _build_table(config or SuppliersConfig())

    def replace_table(self, config: SuppliersConfig) -> None:
        table = _build_table(config)
        with self._lock:
            self._table = table
        logger.info(
            f"Supplier table replaced ({len(table.suppliers)} suppliers)",
            extra={"event": "suppliers.table.replaced"},
        )

    def resolve(self, supplier_name: Optional[str], manufacturer: Optional[str] = None) -> SupplierMatch:
        with self._lock:
            table = self._table

        if self._in_brand_group(table, supplier_name, manufacturer):
            supplier = table.group_supplier
            match = SupplierMatch(
                requested_name=supplier_name,
                rule=RULE_BRAND_GROUP,
                name=supplier.name if supplier else table.group_name,
                email=supplier.email if supplier else None,
                phone=supplier.phone if supplier else None,
            )
            return self._log(match)

        wanted = _normalize(supplier_name)
        if wanted:
            for supplier in table.suppliers:
                if _normalize(supplier.name) == wanted:
                    return self._log(self._from_entry(supplier_name, RULE_EXACT, supplier))

            wanted_tokens = _tokens(supplier_name)
            for supplier in table.suppliers:
                if _tokens_overlap(wanted_tokens, _tokens(supplier.name)):
                    return self._log(self._from_entry(supplier_name, RULE_PARTIAL, supplier))

        return self._log(SupplierMatch(requested_name=supplier_name, rule=RULE_UNRESOLVED))

    @staticmethod
    def _in_brand_group(table: _RoutingTable, supplier_name: Optional[str], manufacturer: Optional[str]) -> bool:
        candidates = {_normalize(manufacturer), _normalize(supplier_name)} - {""}
        if not candidates:
            return False
        return bool(candidates & (set(table.group_brands) | {_normalize(table.group_name)}))

    @staticmethod
    def _from_entry(requested: Optional[str], rule: str, supplier: SupplierEntry) -> SupplierMatch:
        return SupplierMatch(
            requested_name=requested,
            rule=rule,
            name=supplier.name,
            email=supplier.email,
            phone=supplier.phone,
        )

    @staticmethod
    def _log(match: SupplierMatch) -> SupplierMatch:
        if match.resolved:
            logger.debug(
                f"Supplier '{match.requested_name}' routed to {match.name} ({match.rule})",
                extra={"event": "suppliers.resolved", "rule": match.rule},
            )
        else:
            logger.warning(
                f"No supplier address configured for '{match.requested_name}' ({match.rule})",
                extra={"event": "suppliers.unresolved", "rule": match.rule},
            )
        return match


def _tokens_overlap(left: List[str], right: List[str]) -> bool:
    return any(a in b or b in a for a in left for b in right)
