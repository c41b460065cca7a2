"""
Destination bindings.

A destination is a caller-owned location the parser writes parsed values into.
Two shapes are understood:

- Slot: a scalar cell. Each consumed value overwrites the previous one.
- list (any MutableSequence): a sequence cell. Each consumed value is appended.

At registration time the destination is resolved once into a tagged binding
(ScalarBinding / SequenceBinding) for a given value kind (int, text, bool,
file). Bindings expose a single capability, put(value), so the engine never
has to inspect the destination again.

    >>> count = Slot(0)
    >>> binding = resolve(count, "int")
    >>> binding.tag
    'scalar-int'
    >>> binding.put(3); count.value
    3
"""
import io
from collections.abc import MutableSequence

from .faults import UnresolvableDestinationError

KINDS = {
    "int": int,
    "text": str,
    "bool": bool,
    "file": io.IOBase,
}


class Slot[_T]:
    """
    scalar destination owned by the caller.

    the parser only ever assigns `value`; reading it back after parse() gives
    the parsed (or default) value.
    """
    __slots__ = ("value",)

    def __init__(self, value=None, /):
        self.value = value

    def __repr__(self):
        return f"Slot({self.value!r})"

    def __eq__(self, other):
        if not isinstance(other, Slot):
            return NotImplemented
        return self.value == other.value

    __hash__ = None


class Binding:
    __slots__ = ("_target", "_kind")
    __shape__ = None

    def __init__(self, target, kind, /):
        self._target = target
        self._kind = kind

    @property
    def target(self):
        return self._target

    @property
    def kind(self):
        return self._kind

    @property
    def tag(self):
        return "%s-%s" % (type(self).__shape__, self._kind)

    @property
    def collection(self):
        return isinstance(self, SequenceBinding)

    def put(self, value, /):
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}({self.tag})"


class ScalarBinding(Binding):
    __slots__ = ()
    __shape__ = "scalar"

    def put(self, value, /):
        self._target.value = value


class SequenceBinding(Binding):
    __slots__ = ()
    __shape__ = "sequence"

    def put(self, value, /):
        self._target.append(value)


def _compatible(value, kind):
    # bool is an int subclass; keep the two kinds apart
    expected = KINDS[kind]
    if kind == "int" and isinstance(value, bool):
        return False
    return value is None or isinstance(value, expected)


def resolve(destination, kind, /, *, name="<destination>"):
    """
    resolve a caller-owned destination into a tagged binding.

    rules
    - Slot → ScalarBinding; its current value must be None or of the kind.
    - MutableSequence (not str/bytearray) → SequenceBinding; existing items
      must be of the kind.
    - anything else raises UnresolvableDestinationError.
    """
    if kind not in KINDS:
        raise ValueError("resolve() kind must be one of %s" % ", ".join(map(repr, KINDS)))

    if isinstance(destination, Slot):
        if not _compatible(destination.value, kind):
            raise UnresolvableDestinationError(
                "slot for %r holds a %s, expected %s" % (name, type(destination.value).__name__, kind),
                hint="initialize the slot with None or a %s value" % kind,
                destination=destination,
            )
        return ScalarBinding(destination, kind)

    if isinstance(destination, MutableSequence) and not isinstance(destination, bytearray):
        if not all(_compatible(item, kind) and item is not None for item in destination):
            raise UnresolvableDestinationError(
                "sequence for %r holds items that are not %s values" % (name, kind),
                hint="pass an empty list or a list of %s values" % kind,
                destination=destination,
            )
        return SequenceBinding(destination, kind)

    raise UnresolvableDestinationError(
        "cannot bind %r to a destination of type %s" % (name, type(destination).__name__),
        hint="pass a Slot for a single value or a list for many values",
        destination=destination,
    )


__all__ = (
    "Slot",
    "Binding",
    "ScalarBinding",
    "SequenceBinding",
    "resolve",
)
