# signal_wizard/filter_mapper.py
"""
Filter Mapper

Converts between the persisted structured filter query (an AND/OR/NOT tree of
clauses) and the flat FilterState the filter step edits.

Recognized clauses:
    {"field": "source",       "operator": "in",      "value": [str, ...]}
    {"field": "label",        "operator": "in",      "value": [str, ...]}
    {"field": "location",     "operator": "in",      "value": [str, ...]}
    {"field": "published_at", "operator": "between", "value": [iso | None, iso | None]}
    {"field": "reprints",     "operator": "exclude", "value": None}

A list clause under a single-child NOT fills the "excluded" counterpart.
Everything else (OR groups, multi-child or nested NOT, unknown fields or
operators, malformed values, subtrees deeper than the depth limit) is kept
verbatim in ``FilterState.opaque_clauses`` and written back unchanged.

Both functions are total: they never raise for input of the declared types.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from .models import (
    Clause,
    DateWindow,
    FilterState,
    LogicalOp,
    QueryItem,
    QueryNode,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10

SOURCE_FIELD = "source"
LABEL_FIELD = "label"
LOCATION_FIELD = "location"
DATE_FIELD = "published_at"
REPRINTS_FIELD = "reprints"

IN_OPERATOR = "in"
BETWEEN_OPERATOR = "between"
EXCLUDE_OPERATOR = "exclude"

# clause field -> (included attribute, excluded attribute)
LIST_FIELDS: Dict[str, tuple] = {
    SOURCE_FIELD: ("sources_included", "sources_excluded"),
    LABEL_FIELD: ("labels_included", "labels_excluded"),
    LOCATION_FIELD: ("locations_included", "locations_excluded"),
}


# =============================================================================
# STRUCTURED QUERY -> FILTER STATE
# =============================================================================

def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def _parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"expected ISO date string, got {type(value).__name__}")
    return date.fromisoformat(value)


def _parse_date_window(value: Any) -> Optional[DateWindow]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return None
    try:
        return DateWindow(start=_parse_date(value[0]), end=_parse_date(value[1]))
    except (TypeError, ValueError):
        return None


class _StateBuilder:
    """Accumulates FilterState fields while walking a query tree."""

    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        self.lists: Dict[str, List[str]] = {
            attr: [] for pair in LIST_FIELDS.values() for attr in pair
        }
        self.date_window: Optional[DateWindow] = None
        self.show_reprints = True
        self.opaque: List[QueryItem] = []

    def visit(self, item: QueryItem, depth: int) -> None:
        if depth > self.max_depth:
            logger.debug(f"Keeping subtree at depth {depth} opaque")
            self.opaque.append(item.model_copy(deep=True))
            return

        if isinstance(item, Clause):
            if not self._apply_clause(item, negated=False):
                self.opaque.append(item.model_copy(deep=True))
            return

        if item.op is LogicalOp.AND:
            for child in item.children:
                self.visit(child, depth + 1)
            return

        if item.op is LogicalOp.NOT and self._apply_not(item):
            return

        self.opaque.append(item.model_copy(deep=True))

    def _apply_not(self, node: QueryNode) -> bool:
        if len(node.children) != 1 or not isinstance(node.children[0], Clause):
            return False
        return self._apply_clause(node.children[0], negated=True)

    def _apply_clause(self, clause: Clause, negated: bool) -> bool:
        if clause.field in LIST_FIELDS and clause.operator == IN_OPERATOR:
            if not _is_string_list(clause.value):
                return False
            included, excluded = LIST_FIELDS[clause.field]
            self.lists[excluded if negated else included].extend(clause.value)
            return True

        if negated:
            return False

        if clause.field == DATE_FIELD and clause.operator == BETWEEN_OPERATOR:
            if self.date_window is not None:
                return False
            window = _parse_date_window(clause.value)
            if window is None:
                return False
            self.date_window = window
            return True

        if clause.field == REPRINTS_FIELD and clause.operator == EXCLUDE_OPERATOR and clause.value is None:
            self.show_reprints = False
            return True

        return False

    def build(self) -> FilterState:
        return FilterState(
            **self.lists,
            date_window=self.date_window,
            show_reprints=self.show_reprints,
            opaque_clauses=self.opaque,
        )


def to_filter_state(query: Optional[QueryNode], max_depth: int = DEFAULT_MAX_DEPTH) -> FilterState:
    """
    Flatten a structured filter query into a FilterState.

    A root that is not an AND node is treated as the single child of one.
    """
    if query is None:
        return FilterState()

    builder = _StateBuilder(max_depth)
    if query.op is LogicalOp.AND:
        for child in query.children:
            builder.visit(child, depth=2)
    else:
        builder.visit(query, depth=1)

    state = builder.build()
    if state.opaque_clauses:
        logger.info(f"Preserved {len(state.opaque_clauses)} unrecognized clause(s) opaquely")
    return state


# =============================================================================
# FILTER STATE -> STRUCTURED QUERY
# =============================================================================

def _list_clause(field: str, values: List[str]) -> Clause:
    return Clause(field=field, operator=IN_OPERATOR, value=list(values))


def _date_clause(window: DateWindow) -> Clause:
    return Clause(
        field=DATE_FIELD,
        operator=BETWEEN_OPERATOR,
        value=[
            window.start.isoformat() if window.start else None,
            window.end.isoformat() if window.end else None,
        ],
    )


def to_structured_query(filters: FilterState) -> QueryNode:
    """
    Rebuild an AND-of-clauses tree from a FilterState.

    An empty FilterState maps to an empty AND node, which matches everything.
    """
    children: List[QueryItem] = []

    for field, (included, excluded) in LIST_FIELDS.items():
        if values := getattr(filters, included):
            children.append(_list_clause(field, values))
        if values := getattr(filters, excluded):
            children.append(QueryNode(op=LogicalOp.NOT, children=[_list_clause(field, values)]))

    if filters.date_window is not None:
        children.append(_date_clause(filters.date_window))

    # Legacy format: reprints are hidden by the presence of this clause, not by a boolean.
    if not filters.show_reprints:
        children.append(Clause(field=REPRINTS_FIELD, operator=EXCLUDE_OPERATOR, value=None))

    children.extend(item.model_copy(deep=True) for item in filters.opaque_clauses)

    return QueryNode(op=LogicalOp.AND, children=children)


class FilterMapper:
    """Bound mapper carrying the configured depth limit."""

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max_depth

    def to_filter_state(self, query: Optional[QueryNode]) -> FilterState:
        return to_filter_state(query, max_depth=self.max_depth)

    def to_structured_query(self, filters: FilterState) -> QueryNode:
        return to_structured_query(filters)
