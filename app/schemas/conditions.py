"""Routing condition trees.

Rule conditions are stored as JSONB and parsed into a tagged predicate
tree when rules are loaded or written.  The ``op`` key discriminates the
node type::

    {"op": "and", "conditions": [
        {"op": "equals", "field": "program", "value": "MBA"},
        {"op": "range", "field": "score", "min": 60},
        {"op": "not", "condition": {"op": "in_set", "field": "source",
                                    "values": ["csv_import", "api_import"]}}
    ]}

Admin-authored shorthand without ``op`` keys is normalised as well:
``{"program": "MBA", "country": ["US", "CA"]}`` becomes an ``and`` of an
``equals`` and an ``in_set`` node.  A range is written as
``{"score": {"min": 60, "max": 90}}``.

An empty mapping (or ``None``) parses to ``None``: the rule is a
catch-all.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator
from typing_extensions import Annotated, Self

from app.core.exceptions import InvalidRuleConfigError

Scalar = Union[str, int, float, bool, None]

# Lead attributes a routing condition may reference.  Keys are the names
# accepted in rule definitions, values the ``LeadSnapshot`` attribute.
CONDITION_FIELDS: Dict[str, str] = {
    "program": "program_interest",
    "program_interest": "program_interest",
    "source": "source",
    "status": "status",
    "priority": "priority",
    "country": "country",
    "score": "lead_score",
    "lead_score": "lead_score",
    "activity_count": "activity_count",
    "qualification_stage": "qualification_stage",
    "email": "email",
    "phone": "phone",
}

_NODE_CONFIG = ConfigDict(frozen=True, extra="forbid")


class _FieldNode(BaseModel):
    model_config = _NODE_CONFIG

    field: str

    @model_validator(mode="after")
    def validate_field(self) -> Self:
        if self.field not in CONDITION_FIELDS:
            raise ValueError(
                f"Unknown condition field '{self.field}'; expected one of "
                f"{sorted(CONDITION_FIELDS)}"
            )
        return self


class EqualsCondition(_FieldNode):
    op: Literal["equals"] = "equals"
    value: Scalar


class InSetCondition(_FieldNode):
    op: Literal["in_set"] = "in_set"
    values: List[Scalar] = Field(..., min_length=1)


class RangeCondition(_FieldNode):
    op: Literal["range"] = "range"
    min: Optional[float] = None
    max: Optional[float] = None

    @model_validator(mode="after")
    def validate_bounds(self) -> Self:
        if self.min is None and self.max is None:
            raise ValueError(f"Range on '{self.field}' needs a min or max bound")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(
                f"Range on '{self.field}' has min ({self.min}) > max ({self.max})"
            )
        return self


class AndCondition(BaseModel):
    model_config = _NODE_CONFIG

    op: Literal["and"] = "and"
    conditions: List["Condition"] = Field(..., min_length=1)


class OrCondition(BaseModel):
    model_config = _NODE_CONFIG

    op: Literal["or"] = "or"
    conditions: List["Condition"] = Field(..., min_length=1)


class NotCondition(BaseModel):
    model_config = _NODE_CONFIG

    op: Literal["not"] = "not"
    condition: "Condition"


Condition = Annotated[
    Union[
        EqualsCondition,
        InSetCondition,
        RangeCondition,
        AndCondition,
        OrCondition,
        NotCondition,
    ],
    Field(discriminator="op"),
]

AndCondition.model_rebuild()
OrCondition.model_rebuild()
NotCondition.model_rebuild()

_condition_adapter: TypeAdapter = TypeAdapter(Condition)


def _expand_shorthand(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Turn ``{"field": value, ...}`` into an explicit ``op`` tree."""
    nodes: List[Dict[str, Any]] = []
    for field, value in raw.items():
        if isinstance(value, list):
            nodes.append({"op": "in_set", "field": field, "values": value})
        elif isinstance(value, dict):
            nodes.append({"op": "range", "field": field, **value})
        else:
            nodes.append({"op": "equals", "field": field, "value": value})
    if len(nodes) == 1:
        return nodes[0]
    return {"op": "and", "conditions": nodes}


def parse_conditions(raw: Any) -> Optional[Condition]:
    """Parse a stored condition document into a predicate tree.

    Returns ``None`` for an empty document (catch-all rule).

    Raises:
        InvalidRuleConfigError: for unknown operators, unknown fields,
            empty boolean groups or inverted ranges.
    """
    if raw is None or raw == {} or raw == []:
        return None
    if isinstance(raw, BaseModel):
        return raw  # already parsed
    if not isinstance(raw, dict):
        raise InvalidRuleConfigError(
            f"Conditions must be an object, got {type(raw).__name__}"
        )
    document = raw if "op" in raw else _expand_shorthand(raw)
    try:
        return _condition_adapter.validate_python(document)
    except ValidationError as exc:
        raise InvalidRuleConfigError(f"Malformed condition tree: {exc}") from exc


def dump_conditions(condition: Optional[Condition]) -> Dict[str, Any]:
    """Serialise a predicate tree back to its JSONB form."""
    if condition is None:
        return {}
    return condition.model_dump(mode="json", exclude_none=True)
