"""
Argbind faults and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every fault the package
  can raise. Codes are grouped by domain to keep copy consistent and make
  logs/searches predictable.
- Fault: base exception carrying a message plus read-only options, able to
  render itself with rich and to be copied with extra context (copy.replace).
- ConfigurationError / ParsingError: the two families.
  • configuration faults are programmer errors found at registration time and
    are always raised straight to the registration call site.
  • parsing faults are user errors found while parsing; the parser routes them
    through its failure callback.
- getdoc(): optional description lookup for a code from the host application.

Integration
- The engine raises ParsingError subclasses with a message, a hint and context
  (descriptor, token, index, ...).
- ArgumentParser.trigger() stamps runtime options (prog, colorful, fancy) on the
  fault with copy.replace and hands it to the configured callback.
"""
import copy
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset, coalesce


class FaultCode(IntEnum):
    """
    canonical fault codes (stable identifiers).

    grouping (by high-level domain)
    - configuration (2110x)
      • DUPLICATE_DESCRIPTOR, UNRESOLVABLE_DESTINATION,
        COLLECTION_ARITY_MISMATCH, INVALID_ARITY
    - flags (2210x)
      • MISSING_REQUIRED_FLAG, INSUFFICIENT_ARGUMENTS, EMPTY_ASSIGNED_VALUE
    - positionals (2211x)
      • MISSING_REQUIRED_POSITIONAL, INSUFFICIENT_POSITIONAL_ARGUMENTS
    - values (2212x)
      • INVALID_VALUE, VALUE_NOT_IN_CHOICES
    - resources (2213x)
      • RESOURCE_OPEN_ERROR

    the host application can remap codes to labels with a __codes__ mapping
    in __main__ (see normalize()).
    """
    # --- configuration errors (21xxx) ---
    DUPLICATE_DESCRIPTOR              = 21101
    UNRESOLVABLE_DESTINATION          = 21102
    COLLECTION_ARITY_MISMATCH         = 21103
    INVALID_ARITY                     = 21104

    # --- flag errors (22xxx) ---
    MISSING_REQUIRED_FLAG             = 22101
    INSUFFICIENT_ARGUMENTS            = 22102
    EMPTY_ASSIGNED_VALUE              = 22103

    # --- positional errors (22xxx) ---
    MISSING_REQUIRED_POSITIONAL       = 22111
    INSUFFICIENT_POSITIONAL_ARGUMENTS = 22112

    # --- value errors (22xxx) ---
    INVALID_VALUE                     = 22121
    VALUE_NOT_IN_CHOICES              = 22122

    # --- resource errors (22xxx) ---
    RESOURCE_OPEN_ERROR               = 22131

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels. when no mapping
        is present, the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


class Fault(Exception):
    """
    base type of every argbind fault.

    subclasses declare their code and title as class keywords:

        class InvalidValueError(ParsingError, code=FaultCode.INVALID_VALUE, title="invalid value"): ...

    instance options
    - code, title: default to the class declaration, may be overridden.
    - hint: one actionable sentence, rendered after an arrow.
    - prog, colorful, fancy: rendering context stamped by the parser.
    - anything else is kept as context (descriptor, token, index, ...).
    """
    __code__ = Unset
    __title__ = Unset

    def __init_subclass__(cls, /, code=Unset, title=Unset, **options):
        super().__init_subclass__(**options)
        if code is not Unset:
            cls.__code__ = code
        if title is not Unset:
            cls.__title__ = title

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(coalesce(message, ""))
        self.message = message
        self.options = MappingProxyType({
            "code": type(self).__code__,
            "title": type(self).__title__,
        } | options)

    @property
    def code(self):
        return self.options["code"]

    @property
    def title(self):
        return self.options["title"]

    @property
    def hint(self):
        return self.options.get("hint")

    def __rich__(self):
        main = __import__("__main__")
        colorful = self.options.get("colorful", True)
        fancy = self.options.get("fancy", False)

        styles = defaultdict(str, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "error-message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
            "docs": "underline #00E5FF dim",
        } | getattr(main, "__styles__", {}))

        def styler(style):
            return styles[style] if colorful else ""

        def text(fragment, style=""):
            if not fragment:
                return Text("")
            if not colorful:
                return Text(str(fragment))
            if isinstance(fragment, Text):
                return fragment
            return Text(str(fragment), style)

        prog = text(getattr(main, "__prog__", self.options.get("prog", "argbind")), styler("prog-name"))
        code = self.code.normalize() if isinstance(self.code, FaultCode) else "-"

        header = Text.assemble(
            "[ ",
            prog,
            " — ",
            text(code, styler("code")),
            " | ",
            text(str(coalesce(self.title, "fault")).title(), styler("error-title")),
            " ]"
        )
        message = text(coalesce(self.message, ""), styler("error-message"))
        hint = Text.assemble(text(" → ", styler("hint-arrow")), text(self.hint, styler("hint"))) if self.hint else Text("")
        docs = getdoc(self.code) if isinstance(self.code, FaultCode) else None

        if fancy:
            body = [message, hint] + ([text(docs, styler("docs"))] if docs else [])
            return Panel(Group(*body), title=header, title_align="left")

        # a single diagnostic line: header, message and hint
        return Text.assemble(header, " ", message, hint)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        clone = type(self)(self.message, **{**self.options, **overrides})
        clone.__cause__ = self.__cause__
        return clone


class ConfigurationError(Fault): ...
class DuplicateDescriptorError(ConfigurationError, ValueError, code=FaultCode.DUPLICATE_DESCRIPTOR, title="duplicate descriptor"): ...
class UnresolvableDestinationError(ConfigurationError, TypeError, code=FaultCode.UNRESOLVABLE_DESTINATION, title="unresolvable destination"): ...
class CollectionArityMismatchError(ConfigurationError, ValueError, code=FaultCode.COLLECTION_ARITY_MISMATCH, title="collection arity mismatch"): ...
class InvalidArityError(ConfigurationError, ValueError, code=FaultCode.INVALID_ARITY, title="invalid arity"): ...

class ParsingError(Fault): ...
class MissingRequiredFlagError(ParsingError, code=FaultCode.MISSING_REQUIRED_FLAG, title="missing required flag"): ...
class InsufficientArgumentsError(ParsingError, code=FaultCode.INSUFFICIENT_ARGUMENTS, title="not enough arguments"): ...
class EmptyAssignedValueError(ParsingError, code=FaultCode.EMPTY_ASSIGNED_VALUE, title="empty assigned value"): ...
class MissingRequiredPositionalError(ParsingError, code=FaultCode.MISSING_REQUIRED_POSITIONAL, title="missing required positional"): ...
class InsufficientPositionalArgumentsError(InsufficientArgumentsError, code=FaultCode.INSUFFICIENT_POSITIONAL_ARGUMENTS, title="not enough positional arguments"): ...
class InvalidValueError(ParsingError, code=FaultCode.INVALID_VALUE, title="invalid value"): ...
class ValueNotInChoicesError(ParsingError, code=FaultCode.VALUE_NOT_IN_CHOICES, title="invalid choice"): ...
class ResourceOpenError(ParsingError, code=FaultCode.RESOURCE_OPEN_ERROR, title="cannot open resource"): ...


def getdoc(code, /):
    """
    optional documentation fetch for a fault code.

    the host application may expose a __docs__ mapping in __main__ where keys
    are FaultCode instances and values are short documentation strings.
    returns None when nothing is found.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    try:
        return getattr(__import__("__main__"), "__docs__", {})[code]
    except KeyError:
        return None


def stamp(fault, /, **options):
    """
    return a copy of `fault` carrying the given runtime options.

    the copy keeps the original cause so chained errors (e.g. the OSError
    behind a ResourceOpenError) survive the round trip.
    """
    if not isinstance(fault, Fault):
        raise TypeError("stamp() argument must be a fault")
    return copy.replace(fault, **options)


__all__ = (
    "FaultCode",
    "Fault",
    "ConfigurationError",
    "DuplicateDescriptorError",
    "UnresolvableDestinationError",
    "CollectionArityMismatchError",
    "InvalidArityError",
    "ParsingError",
    "MissingRequiredFlagError",
    "InsufficientArgumentsError",
    "EmptyAssignedValueError",
    "MissingRequiredPositionalError",
    "InsufficientPositionalArgumentsError",
    "InvalidValueError",
    "ValueNotInChoicesError",
    "ResourceOpenError",
    "getdoc",
    "stamp",
)
