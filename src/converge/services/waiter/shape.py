"""
Typed shapes for fetched objects.

A TypedShape describes the structure a fetched object is expected to have. The
field waiter converts each fetched object through its shape before walking
matcher paths, so values are compared with type fidelity (an ``int-or-string``
port stays a string, undeclared attributes are dropped).

Shapes are normally derived from the cluster's OpenAPI document by a separate
resolver; ``to_typed`` is the default conversion and can be swapped out.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from converge.core.errors import ShapeMismatchError

INT_OR_STRING_HINT = "io.k8s.apimachinery.pkg.util.intstr.IntOrString"


class ShapeKind(str, Enum):
    """Kinds of typed shape."""

    OBJECT = "object"
    MAP = "map"
    LIST = "list"
    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"
    DYNAMIC = "dynamic"


@dataclass(frozen=True)
class TypedShape:
    kind: ShapeKind
    attributes: Mapping[str, "TypedShape"] = field(default_factory=dict)
    element: Optional["TypedShape"] = None

    @classmethod
    def object(cls, **attributes: "TypedShape") -> "TypedShape":
        return cls(ShapeKind.OBJECT, attributes=attributes)

    @classmethod
    def list_of(cls, element: "TypedShape") -> "TypedShape":
        return cls(ShapeKind.LIST, element=element)

    @classmethod
    def map_of(cls, element: "TypedShape") -> "TypedShape":
        return cls(ShapeKind.MAP, element=element)


STRING = TypedShape(ShapeKind.STRING)
NUMBER = TypedShape(ShapeKind.NUMBER)
BOOL = TypedShape(ShapeKind.BOOL)
DYNAMIC = TypedShape(ShapeKind.DYNAMIC)


def _join(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


def to_typed(
    raw: Any,
    shape: Optional[TypedShape],
    type_hints: Optional[Dict[str, str]] = None,
    path: str = "",
) -> Any:
    """
    Convert ``raw`` to the typed tree described by ``shape``.

    ``type_hints`` maps attribute paths (attribute names joined by ``.``, list
    and map element steps omitted) to OpenAPI type names. The input is never
    mutated; a new tree is returned.
    """
    hints = type_hints or {}
    if shape is None or shape.kind == ShapeKind.DYNAMIC or raw is None:
        return raw

    kind = shape.kind
    if kind == ShapeKind.STRING:
        if isinstance(raw, str):
            return raw
        if (
            hints.get(path) == INT_OR_STRING_HINT
            and isinstance(raw, int)
            and not isinstance(raw, bool)
        ):
            return str(raw)
        raise ShapeMismatchError(path, f"expected string, got {type(raw).__name__}")

    if kind == ShapeKind.NUMBER:
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return raw
        raise ShapeMismatchError(path, f"expected number, got {type(raw).__name__}")

    if kind == ShapeKind.BOOL:
        if isinstance(raw, bool):
            return raw
        raise ShapeMismatchError(path, f"expected bool, got {type(raw).__name__}")

    if kind == ShapeKind.LIST:
        if not isinstance(raw, list):
            raise ShapeMismatchError(path, f"expected list, got {type(raw).__name__}")
        return [to_typed(item, shape.element, hints, path) for item in raw]

    if not isinstance(raw, dict):
        raise ShapeMismatchError(path, f"expected map, got {type(raw).__name__}")

    if kind == ShapeKind.MAP:
        return {k: to_typed(v, shape.element, hints, path) for k, v in raw.items()}

    return {
        name: to_typed(raw[name], attr_shape, hints, _join(path, name))
        for name, attr_shape in shape.attributes.items()
        if name in raw
    }
