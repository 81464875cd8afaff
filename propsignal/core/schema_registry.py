from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

PROPERTY_TYPES: Tuple[str, ...] = ("house", "unit")

# Bedroom preference orders used when the user does not name a bedroom count
BEDROOM_PREFS: Dict[str, Tuple[int, ...]] = {
    "house": (4, 3, 2),
    "unit": (2, 1, 3),  # more representative stock
}

OPERATORS: FrozenSet[str] = frozenset({"eq", "in", "between", "is_null", "not_null"})

_KEY_COLUMNS = ("suburb", "postcode", "state", "year", "property_type", "bedroom")


@dataclass(frozen=True)
class TableSpec:
    name: str  # logical name used by TableQuery
    physical: str  # table name in the data store
    columns: FrozenSet[str]
    # Columns that may appear in filters / orderBy (metrics are select-only)
    filterable: FrozenSet[str] = field(default_factory=frozenset)

    def has_column(self, column: str) -> bool:
        return column in self.columns

    def can_filter(self, column: str) -> bool:
        return column in self.filterable


@dataclass(frozen=True)
class SchemaRegistry:
    tables: Mapping[str, TableSpec]
    max_rows: int = 500

    def table(self, name: str) -> Optional[TableSpec]:
        return self.tables.get(name)

    def has_table(self, name: str) -> bool:
        return name in self.tables

    def has_column(self, table: str, column: str) -> bool:
        t = self.tables.get(table)
        return bool(t and t.has_column(column))

    def list_tables(self) -> List[str]:
        return sorted(self.tables.keys())

    @staticmethod
    def bedroom_prefs(property_type: str, requested: Optional[List[int]] = None) -> List[int]:
        """Preference order for a property type, front-loaded with requested counts."""
        base = list(BEDROOM_PREFS.get(property_type, ()))
        front: List[int] = []
        for b in requested or []:
            if b not in front:
                front.append(b)
        return front + [b for b in base if b not in front]


def build_registry(
    *,
    price_table: str = "median_price",
    rent_table: str = "median_rentals",
    yield_table: str = "rental_yields",
    lga_yield_table: str = "lga_rental_yields",
    suburb_table: str = "lga_suburbs",
    max_rows: int = 500,
) -> SchemaRegistry:
    keys = frozenset(_KEY_COLUMNS)
    specs = [
        TableSpec("price_table", price_table, keys | {"lga", "median_price"}, keys | {"lga"}),
        TableSpec("rent_table", rent_table, keys | {"lga", "median_rent_weekly"}, keys | {"lga"}),
        TableSpec(
            "yield_table",
            yield_table,
            frozenset({"suburb", "lga", "state", "year", "property_type", "yield_pct"}),
            frozenset({"suburb", "lga", "state", "year", "property_type"}),
        ),
        TableSpec(
            "lga_yield_table",
            lga_yield_table,
            frozenset({"lga", "state", "year", "property_type", "yield_pct"}),
            frozenset({"lga", "state", "year", "property_type"}),
        ),
        TableSpec(
            "suburb_table",
            suburb_table,
            frozenset({"suburb", "lga", "state", "postcode"}),
            frozenset({"suburb", "lga", "state", "postcode"}),
        ),
    ]
    return SchemaRegistry(tables={s.name: s for s in specs}, max_rows=max_rows)
