r"""
Argbind descriptors and value conversion.

Overview
- Descriptors
  • IntVar: integer values (base-aware syntax: 42, 0x2a, 0o52, 052, 0b101010).
  • TextVar: text values, taken as-is.
  • BoolVar: boolean values, either as presence toggles or parsed literals.
  • FileVar: file handles opened from a path with a mode and permission bits.
  Each descriptor owns its metadata and its Value Converter (convert()).

- Naming
  • names starting with '-' are named flags (e.g., --output, with an optional
    short form such as -o), everything else is a positional label.

- Introspection & representation
  • DescriptorType metaclass provides stable __repr__/__rich_repr__ and exposes
    selected fields via read-only properties declared in __introspectable__.

Metadata (sanitized on construction)
- name: required; flags match r"--?[^\W\d_](-?[^\W_]+)*", labels r"[^\W\d_](-?\w+)*".
- short_flag: Unset | str (flags only), same grammar as flag names.
- help: Unset | str, non-empty when provided.
- required: bool.
- nargs: int; 0 = exactly one, k > 0 = exactly k, -1 = unbounded (positionals only).
- default: value written into a scalar destination at construction.
- choices: Iterable (IntVar/TextVar only), duplicates rejected unless a Set.

Arity vs. destination
- scalar destinations accept exactly one value per match (nargs 0 or 1).
- sequence destinations need a positive or unbounded nargs.
- BoolVar flags with nargs 0 consume nothing: presence writes value_on_exist.

Quick example:
    >>> from argbind import Slot, IntVar
    >>> level = Slot(0)
    >>> descriptor = IntVar(level, "--level", "verbosity", short_flag="-l", choices=range(4))
    >>> descriptor.convert("0x2")
    2
"""
import functools
import operator
import os
import re
from collections.abc import Iterable, Set

from rich.text import Text

from .destinations import KINDS, resolve
from .faults import (
    CollectionArityMismatchError,
    InvalidArityError,
    InvalidValueError,
    ResourceOpenError,
    ValueNotInChoicesError,
)
from .utils import *

UNBOUNDED = -1

_FLAG = re.compile(r"--?[^\W\d_](-?[^\W_]+)*")
_LABEL = re.compile(r"[^\W\d_](-?\w+)*")

_TRUTHY = frozenset({"1", "t", "true"})
_FALSY = frozenset({"0", "f", "false"})

_MODES = {
    "r": (os.O_RDONLY, "r"),
    "w": (os.O_WRONLY | os.O_CREAT | os.O_TRUNC, "w"),
    "rw": (os.O_RDWR | os.O_CREAT | os.O_TRUNC, "w+"),
    "wr": (os.O_RDWR | os.O_CREAT | os.O_TRUNC, "w+"),
}


def parse_int(token, /):
    """
    parse an integer literal with base detection.

    accepted forms (optionally signed)
    - decimal: 42, 1_000
    - prefixed: 0x2a, 0o52, 0b101010 (case-insensitive prefixes)
    - leading zero means octal: 052

    raises ValueError on anything else, including surrounding whitespace.
    """
    if not isinstance(token, str):
        raise TypeError("parse_int() argument must be a string")
    if not token or token != token.strip():
        raise ValueError("invalid integer literal %r" % token)

    body = token[1:] if token[0] in "+-" else token
    negative = token[0] == "-"

    if len(body) > 1 and body[0] == "0" and (body[1].isdigit() or body[1] == "_"):
        digits = body[1:].removeprefix("_")
        if not digits or not re.fullmatch(r"[0-7]+(_[0-7]+)*", digits):
            raise ValueError("invalid octal literal %r" % token)
        value = int(digits, 8)
    else:
        if not re.fullmatch(r"[0-9A-Za-z_]+", body):
            raise ValueError("invalid integer literal %r" % token)
        value = int(body, 0)

    return -value if negative else value


def parse_bool(token, /):
    """
    parse a case-insensitive boolean literal: 1/t/true or 0/f/false.
    """
    if not isinstance(token, str):
        raise TypeError("parse_bool() argument must be a string")
    if (lowered := token.lower()) in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError("invalid boolean literal %r" % token)


def open_file(path, /, mode="r", perms=0o640):
    """
    open `path` with one of the supported modes and return a text handle.

    modes
    - "r": read only; the file must exist.
    - "w": write only; created with `perms` when missing, truncated otherwise.
    - "rw" / "wr": read-write; created and truncated like "w".
    """
    try:
        flags, fmode = _MODES[mode]
    except KeyError:
        raise ValueError("open_file() mode must be one of %s" % ", ".join(map(repr, _MODES))) from None
    # the opener keeps `path` as the handle name
    return open(path, fmode, opener=lambda path, _: os.open(path, flags, perms))


class DescriptorType(type):
    """
    Metaclass that makes descriptor classes introspectable.

    Responsibilities
    - Derive __typename__ from the class name (camel-case split with hyphens),
      used in messages and help output ("int-var", "file-var", ...).
    - Expose every name listed in __introspectable__ as a read-only property
      mirroring the "_<name>" backing field.
    - Provide stable __repr__/__rich_repr__ implementations.
    """
    __introspectable__ = ()

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
            **options
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
            })"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in type(self).__displayable__:
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


def _sanitize_metadata(cls, metadata, /):
    """
    Internal: validate and normalize the naming metadata shared by every descriptor.

    - name: non-empty string, a flag name ('-x', '--long-name') or a positional label.
    - short_flag: only for flags; must be a valid flag name distinct from name.
    - help: Unset or a non-empty string (or rich Text); Unset becomes None.
    - required: bool.

    Mutates `metadata` in place. Raises TypeError/ValueError on bad input.
    """
    if not isinstance(name := metadata["name"], str):
        raise TypeError(f"{cls.__typename__} 'name' must be a string")
    elif not (name := name.strip()):
        raise ValueError(f"{cls.__typename__} 'name' cannot be empty")
    elif name.startswith("-") and not _FLAG.fullmatch(name):
        raise ValueError(f"{cls.__typename__} flag names must be valid shell-style option names (unicodes are allowed)")
    elif not name.startswith("-") and not _LABEL.fullmatch(name):
        raise ValueError(f"{cls.__typename__} positional labels must be identifiers (hyphens are allowed)")
    metadata["name"] = name

    if not isinstance(short := metadata["short_flag"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'short_flag' must be a string")
    elif isinstance(short, str):
        if not name.startswith("-"):
            raise TypeError(f"{cls.__typename__} positional {name!r} cannot have a short flag")
        if not _FLAG.fullmatch(short := short.strip()):
            raise ValueError(f"{cls.__typename__} 'short_flag' must be a valid shell-style option name")
        if short == name:
            raise ValueError(f"{cls.__typename__} 'short_flag' must differ from the name")
    metadata["short_flag"] = coalesce(short)

    if not isinstance(help := metadata["help"], str | Text | Unset):
        raise TypeError(f"{cls.__typename__} 'help' must be a string")
    elif isinstance(help, str) and not (help := help.strip()):
        raise ValueError(f"{cls.__typename__} 'help' cannot be empty")
    metadata["help"] = coalesce(help)

    if not isinstance(metadata["required"], bool):
        raise TypeError(f"{cls.__typename__} 'required' must be a boolean")


def _sanitize_arity(cls, metadata, /):
    """
    Internal: validate 'nargs' against the descriptor kind and destination shape.

    - nargs must be an int >= -1; -1 (unbounded) is reserved for positionals.
    - scalar destinations take one value per match (nargs 0 or 1).
    - sequence destinations take a positive or unbounded count.
    """
    name = metadata["name"]
    if not isinstance(nargs := metadata["nargs"], int) or isinstance(nargs, bool):
        raise TypeError(f"{cls.__typename__} 'nargs' must be an integer")
    if nargs < UNBOUNDED:
        raise InvalidArityError(
            "nargs of %r must be -1, 0 or a positive integer (got %d)" % (name, nargs),
            hint="use 0 for exactly one value, k for exactly k values, -1 for all remaining values",
        )
    if nargs == UNBOUNDED and name.startswith("-"):
        raise InvalidArityError(
            "flag %r cannot take an unbounded number of values" % name,
            hint="declare a fixed count or use a positional with nargs=-1",
        )

    binding = metadata["binding"]
    if binding.collection and nargs == 0:
        raise CollectionArityMismatchError(
            "sequence destination of %r needs a positive or unbounded nargs" % name,
            hint="pass a Slot to store a single value, or declare nargs >= 1",
        )
    if not binding.collection and nargs not in (0, 1):
        raise CollectionArityMismatchError(
            "cannot store %s in the single value destination of %r" % (
                "all remaining values" if nargs == UNBOUNDED else pluralize("value", nargs), name
            ),
            hint="pass a list to collect many values, or declare nargs=0",
        )


def _sanitize_choices(cls, metadata, /):
    """
    Internal: validate and normalize 'choices'.

    - must be iterable; when not a Set, duplicates are rejected and the
      collection is normalized to a tuple (display order is kept).
    - every choice must be of the descriptor's value kind.
    """
    if not isinstance(choices := metadata["choices"], Iterable) or isinstance(choices, str):
        raise TypeError(f"{cls.__typename__} 'choices' must be a non-string iterable")
    if not isinstance(choices, Set):
        sanitized = []
        for choice in choices:
            if choice in sanitized:
                raise ValueError(f"{cls.__typename__} 'choices' cannot contain duplicates")
            sanitized.append(choice)
        choices = tuple(sanitized)
    expected = KINDS[cls.__kind__]
    for choice in choices:
        if not isinstance(choice, expected) or isinstance(choice, bool) is not (expected is bool):
            raise TypeError(f"{cls.__typename__} 'choices' must only contain {cls.__kind__} values")
    metadata["choices"] = choices


def _sanitize_default(cls, metadata, /):
    """
    Internal: validate 'default' against the destination.

    scalar destinations receive the default at construction; sequence
    destinations carry their own initial items and reject a default.
    """
    if (default := metadata["default"]) is Unset:
        return
    if metadata["binding"].collection:
        raise TypeError(f"{cls.__typename__} sequence destinations cannot take a 'default', pre-fill the list instead")
    expected = KINDS[cls.__kind__]
    if default is not None and (not isinstance(default, expected) or (cls.__kind__ == "int" and isinstance(default, bool))):
        raise TypeError(f"{cls.__typename__} 'default' must be a {cls.__kind__} value")


class Descriptor(metaclass=DescriptorType):
    """
    Static declaration of one bindable command-line parameter.

    Descriptor is abstract: concrete kinds (IntVar, TextVar, BoolVar, FileVar)
    declare a __kind__ and implement convert(). The destination is resolved
    into a tagged binding once, here, and never inspected again.

    Properties
    - The names in __introspectable__ are read-only mirrors of sanitized metadata.
    - named: True for flags (name starts with '-').
    - arity: number of tokens consumed per match (0 for presence toggles,
      UNBOUNDED for greedy positionals).
    """
    __kind__ = None
    __introspectable__ = (
        "name",
        "short_flag",
        "help",
        "required",
        "nargs",
        "default",
        "binding",
    )
    __displayable__ = (
        "name",
        "short_flag",
        "required",
        "nargs",
        "default",
    )

    def __init__(
            self,
            destination,
            name,
            help=Unset,
            /,
            *,
            short_flag=Unset,
            required=False,
            nargs=0,
            default=Unset,
    ):
        if type(self).__kind__ is None:
            raise TypeError(f"{type(self).__name__} is abstract, use IntVar, TextVar, BoolVar or FileVar")

        metadata = {
            "name": name,
            "short_flag": short_flag,
            "help": help,
            "required": required,
            "nargs": nargs,
            "default": default,
        }
        _sanitize_metadata(type(self), metadata)
        metadata["binding"] = resolve(destination, type(self).__kind__, name=metadata["name"])
        _sanitize_arity(type(self), metadata)
        _sanitize_default(type(self), metadata)

        for key, value in metadata.items():
            setattr(self, "_" + key, value)

        if default is not Unset:
            self._binding.put(default)

    @property
    def named(self):
        return self._name.startswith("-")

    @property
    def flags(self):
        """the names this descriptor answers to, canonical first."""
        return tuple(name for name in (self._name, self._short_flag) if name is not None)

    @property
    def destination(self):
        return self._binding.target

    @property
    def arity(self):
        if self._nargs == UNBOUNDED:
            return UNBOUNDED
        return self._nargs or 1

    @property
    def metavar(self):
        return self._name.lstrip("-").upper()

    def put(self, value, /):
        """write one converted value through the destination binding."""
        self._binding.put(value)

    def convert(self, token, /):
        raise NotImplementedError

    def _check_choices(self, value, token, /):
        if self._choices and value not in self._choices:
            raise ValueNotInChoicesError(
                "invalid value %r for %r" % (token, self._name),
                hint="choose from %s" % ", ".join(map(repr, self._choices)),
                descriptor=self,
                token=token,
            )
        return value


class IntVar(Descriptor):
    """Integer descriptor; values go through parse_int() and the choices check."""
    __kind__ = "int"
    __introspectable__ = Descriptor.__introspectable__ + ("choices",)
    __displayable__ = Descriptor.__displayable__ + ("choices",)

    def __init__(self, destination, name, help=Unset, /, *, choices=(), **options):
        metadata = {"choices": choices}
        _sanitize_choices(type(self), metadata)
        self._choices = metadata["choices"]
        super().__init__(destination, name, help, **options)

    def convert(self, token, /):
        try:
            value = parse_int(token)
        except ValueError:
            raise InvalidValueError(
                "cannot parse %r as an integer for %r" % (token, self._name),
                hint="use a decimal, 0x-hex, 0o-octal or 0b-binary integer",
                descriptor=self,
                token=token,
            ) from None
        return self._check_choices(value, token)


class TextVar(Descriptor):
    """Text descriptor; values are taken as-is, subject to choices."""
    __kind__ = "text"
    __introspectable__ = Descriptor.__introspectable__ + ("choices",)
    __displayable__ = Descriptor.__displayable__ + ("choices",)

    def __init__(self, destination, name, help=Unset, /, *, choices=(), **options):
        metadata = {"choices": choices}
        _sanitize_choices(type(self), metadata)
        self._choices = metadata["choices"]
        super().__init__(destination, name, help, **options)

    def convert(self, token, /):
        return self._check_choices(token, token)


class BoolVar(Descriptor):
    """
    Boolean descriptor.

    As a flag with nargs=0 it is a presence toggle: the flag alone writes
    value_on_exist and consumes no token. Any other arity parses literals
    (1/t/true, 0/f/false, case-insensitive).

    value_on_exist defaults to True, so a bare `--verbose` switches on; pass
    value_on_exist=False for negative toggles such as `--no-color`. An empty
    Slot reads False until the flag shows up.
    """
    __kind__ = "bool"
    __introspectable__ = Descriptor.__introspectable__ + ("value_on_exist",)
    __displayable__ = Descriptor.__displayable__ + ("value_on_exist",)

    def __init__(self, destination, name, help=Unset, /, *, value_on_exist=True, **options):
        if not isinstance(value_on_exist, bool):
            raise TypeError(f"{type(self).__typename__} 'value_on_exist' must be a boolean")
        self._value_on_exist = value_on_exist
        super().__init__(destination, name, help, **options)
        # an empty scalar slot reads as False until the flag shows up
        if self._default is Unset and not self._binding.collection and self.destination.value is None:
            self._default = False
            self._binding.put(False)

    @property
    def toggle(self):
        return self.named and self._nargs == 0

    @property
    def arity(self):
        return 0 if self.toggle else super().arity

    def convert(self, token, /):
        try:
            return parse_bool(token)
        except ValueError:
            raise InvalidValueError(
                "cannot parse %r as a boolean for %r" % (token, self._name),
                hint="use one of true, false, t, f, 1 or 0",
                descriptor=self,
                token=token,
            ) from None


class FileVar(Descriptor):
    """
    File descriptor; each token is a path opened with `mode` and `perms`.

    Handles are not closed by the descriptor. The parser tracks them when
    close_on_exit is set (see ArgumentParser.close_all_open_files).
    """
    __kind__ = "file"
    __introspectable__ = Descriptor.__introspectable__ + ("mode", "perms", "close_on_exit")
    __displayable__ = Descriptor.__displayable__ + ("mode", "perms", "close_on_exit")

    def __init__(self, destination, name, help=Unset, /, *, mode="r", perms=0o640, close_on_exit=False, **options):
        if mode not in _MODES:
            raise ValueError(f"{type(self).__typename__} 'mode' must be one of {", ".join(map(repr, _MODES))}")
        if not isinstance(perms, int) or isinstance(perms, bool):
            raise TypeError(f"{type(self).__typename__} 'perms' must be an integer")
        if not 0 < perms <= 0o7777:
            raise ValueError(f"{type(self).__typename__} 'perms' must be a permission mask between 0o1 and 0o7777")
        if not isinstance(close_on_exit, bool):
            raise TypeError(f"{type(self).__typename__} 'close_on_exit' must be a boolean")
        self._mode = mode
        self._perms = perms
        self._close_on_exit = close_on_exit
        super().__init__(destination, name, help, **options)

    def convert(self, token, /):
        try:
            return open_file(token, self._mode, self._perms)
        except OSError as error:
            raise ResourceOpenError(
                "cannot open %r for %r: %s" % (token, self._name, error.strerror or error),
                hint="check that the path exists and is accessible",
                descriptor=self,
                token=token,
            ) from error


__all__ = (
    "UNBOUNDED",
    "parse_int",
    "parse_bool",
    "open_file",
    "DescriptorType",
    "Descriptor",
    "IntVar",
    "TextVar",
    "BoolVar",
    "FileVar",
)
