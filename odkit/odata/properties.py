"""
odkit.odata.properties - Typed property values
==============================================

One wrapper class per EDM wire type. Every wrapper exposes the same
capability interface:

- ``type``: the wire type tag, e.g. ``"Edm.Guid"``
- ``value``: the typed Python value (validated on assignment)
- ``url_value``: literal usable inside ``$filter`` predicates and key segments
- ``json_value``: value for JSON request payloads

Values are validated on assignment and stored in a normalized textual
form, then converted back to Python objects on read.

Use :func:`build_property` to create the right wrapper for a
:class:`~odkit.odata.metadata.PropertyDefinition`.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type
import datetime as dt
import json
import re
import uuid

from odkit.odata.errors import NotFoundError, ValidationError
from odkit.odata.metadata import (
    ComplexTypeDefinition,
    EnumTypeDefinition,
    NavigationPropertyDefinition,
    PropertyDefinition,
)


GUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
INTEGER_RE = re.compile(r"^[+-]?\d+$")
TIME_RE = re.compile(
    r"^(\d{2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?$"
)
DURATION_RE = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)(?:\.\d+)?S)?$")
JSON_DATE_RE = re.compile(r"^/Date\((-?\d+)([+-]\d{4})?\)/$")

INTEGER_RANGES: Dict[str, Tuple[int, int]] = {
    "Edm.Byte": (0, 255),
    "Edm.SByte": (-128, 127),
    "Edm.Int16": (-(2 ** 15), 2 ** 15 - 1),
    "Edm.Int32": (-(2 ** 31), 2 ** 31 - 1),
    "Edm.Int64": (-(2 ** 63), 2 ** 63 - 1),
}


def escape_odata_literal(value: str) -> str:
    """
    Escape a string value for use in OData $filter expressions.

    Parameters
    ----------
    value : str
        The value to escape

    Returns
    -------
    str
        Escaped value safe for OData filters

    Examples
    --------
    >>> escape_odata_literal("O'Brien")
    "O''Brien"
    """
    return value.replace("'", "''")


def _is_one_of(value: Any, accepted: Tuple[Any, ...]) -> bool:
    # strict: 1.0 or numpy scalars are not 1
    return any(type(value) is type(a) and value == a for a in accepted)


def _utc_offset(t: dt.time) -> str:
    offset = t.utcoffset() or dt.timedelta(0)
    minutes = int(offset.total_seconds()) // 60
    sign = "-" if minutes < 0 else "+"
    hours, minutes = divmod(abs(minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def parse_iso_datetime(text: str) -> dt.datetime:
    """
    Parse ISO-8601 text the way OData services emit it.

    Accepts a trailing ``Z``, more than six fractional digits and the
    legacy V2 ``/Date(<ms>)/`` JSON form.
    """
    m = JSON_DATE_RE.match(text)
    if m:
        stamp = dt.datetime.fromtimestamp(int(m.group(1)) / 1000.0, tz=dt.timezone.utc)
        return stamp.replace(tzinfo=None) if m.group(2) is None else stamp
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = re.sub(r"(\.\d{6})\d+", r"\1", text)
    return dt.datetime.fromisoformat(text)


class Property:
    """
    A single typed property value owned by one entity.

    Parameters
    ----------
    name : str
        Property name as declared in $metadata
    value : any, optional
        Initial value; validated exactly like an assignment
    allows_nil : bool
        Whether ``None`` is an acceptable value
    default_value : any, optional
        Value reported while nothing has been assigned
    type_name : str, optional
        Wire type tag, for wrappers that serve several tags
    """

    type_name = "Edm.Untyped"

    def __init__(
        self,
        name: str,
        value: Any = None,
        *,
        allows_nil: bool = True,
        default_value: Any = None,
        type_name: Optional[str] = None,
        **facets: Any,
    ) -> None:
        self.name = name
        self.allows_nil = allows_nil
        if type_name:
            self.type_name = type_name
        self.facets = facets
        self.changed = False
        self._raw: Any = None
        self._assigned = False
        self._default_raw: Any = None
        if default_value is not None:
            self._default_raw = self._from_wire(default_value)
        if value is not None:
            self.set_value(value)
            self.changed = False

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}={self.value!r}>"

    # ---------------- capability interface ----------------

    @property
    def type(self) -> str:
        return self.type_name

    @property
    def value(self) -> Any:
        raw = self._raw if self._assigned else self._default_raw
        if self._is_blank(raw):
            return None if self.allows_nil else self._empty()
        return self._typecast(raw)

    @value.setter
    def value(self, new_value: Any) -> None:
        self.set_value(new_value)

    def set_value(self, new_value: Any) -> None:
        """Validate ``new_value`` and store its normalized form."""
        if new_value is None:
            self._check_nil()
            self._raw = None
        else:
            self.validate(new_value)
            self._raw = self._parse(new_value)
        self._assigned = True
        self.changed = True

    def load(self, wire_value: Any) -> None:
        """Store a value as it arrived in a JSON payload."""
        if wire_value is None:
            self._check_nil()
            self._raw = None
        else:
            self._raw = self._from_wire(wire_value)
        self._assigned = True

    @property
    def url_value(self) -> str:
        value = self.value
        if value is None:
            return "null"
        return self._url_literal(value)

    @property
    def json_value(self) -> Any:
        value = self.value
        return None if value is None else self._json(value)

    # ---------------- state ----------------

    def is_set(self) -> bool:
        """True once a value was assigned or loaded, even ``None``."""
        return self._assigned

    def has_default_value(self) -> bool:
        return self._default_raw is not None

    @property
    def default_value(self) -> Any:
        if self._default_raw is None:
            return None
        return self._typecast(self._default_raw)

    # ---------------- per-type hooks ----------------

    def validate(self, value: Any) -> None:
        pass

    def _parse(self, value: Any) -> Any:
        return value

    def _from_wire(self, value: Any) -> Any:
        self.validate(value)
        return self._parse(value)

    def _typecast(self, raw: Any) -> Any:
        return raw

    def _empty(self) -> Any:
        return None

    def _is_blank(self, raw: Any) -> bool:
        return raw is None or raw == ""

    def _url_literal(self, value: Any) -> str:
        return str(value)

    def _json(self, value: Any) -> Any:
        return value

    def _check_nil(self) -> None:
        if not self.allows_nil:
            raise self._validation_error("Value cannot be nil")

    def _validation_error(self, reason: str) -> ValidationError:
        return ValidationError(reason, self.name)


class StringProperty(Property):
    """Edm.String, with a unicode flag, max length and default value."""

    type_name = "Edm.String"

    def __init__(
        self,
        name: str,
        value: Any = None,
        *,
        unicode: bool = True,
        max_length: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        self.unicode = unicode
        self.max_length = max_length
        super().__init__(name, value, **kwargs)

    def is_unicode(self) -> bool:
        return self.unicode

    @property
    def encoding(self) -> str:
        """Character encoding values of this property are restricted to."""
        return "utf-8" if self.unicode else "ascii"

    def validate(self, value: Any) -> None:
        if not isinstance(value, str):
            raise self._validation_error("Value is not a string")
        if not self.unicode:
            try:
                value.encode("ascii")
            except UnicodeEncodeError:
                raise self._validation_error("Value contains non-ASCII characters")
        if self.max_length is not None and len(value) > self.max_length:
            raise self._validation_error(f"Value is longer than {self.max_length} characters")

    def _is_blank(self, raw: Any) -> bool:
        return raw is None

    def _empty(self) -> str:
        return ""

    def _url_literal(self, value: str) -> str:
        return f"'{escape_odata_literal(value)}'"


class BooleanProperty(Property):
    type_name = "Edm.Boolean"
    ACCEPTED = (0, 1, "0", "1", "true", "false", True, False)

    def validate(self, value: Any) -> None:
        if not _is_one_of(value, self.ACCEPTED):
            raise self._validation_error("Value is outside accepted range: true or false")

    def _parse(self, value: Any) -> str:
        return "true" if _is_one_of(value, (1, "1", "true", True)) else "false"

    def _typecast(self, raw: str) -> bool:
        return raw == "true"

    def _empty(self) -> bool:
        return False

    def _url_literal(self, value: bool) -> str:
        return "true" if value else "false"


class BinaryProperty(Property):
    """Single-bit Edm.Binary value, stored as "0" or "1"."""

    type_name = "Edm.Binary"
    ACCEPTED = (0, 1, "0", "1", True, False)

    def validate(self, value: Any) -> None:
        if not _is_one_of(value, self.ACCEPTED):
            raise self._validation_error("Value is outside accepted range: 0 or 1")

    def _parse(self, value: Any) -> str:
        return "0" if _is_one_of(value, (0, "0", False)) else "1"

    def _typecast(self, raw: str) -> int:
        return int(raw)

    def _empty(self) -> int:
        return 0

    def _url_literal(self, value: int) -> str:
        return f"binary'{value}'"


class IntegerProperty(Property):
    """Edm.Byte, Edm.SByte, Edm.Int16, Edm.Int32 and Edm.Int64."""

    type_name = "Edm.Int32"

    def validate(self, value: Any) -> None:
        if isinstance(value, bool):
            raise self._validation_error("Value is not an integer")
        if isinstance(value, str) and INTEGER_RE.match(value.strip()):
            value = int(value)
        if not isinstance(value, int):
            raise self._validation_error("Value is not an integer")
        low, high = INTEGER_RANGES.get(self.type_name, INTEGER_RANGES["Edm.Int64"])
        if not low <= value <= high:
            raise self._validation_error(f"Value is outside accepted range: {low} to {high}")

    def _parse(self, value: Any) -> str:
        return str(int(value))

    def _typecast(self, raw: str) -> int:
        return int(raw)

    def _empty(self) -> int:
        return 0


class DecimalProperty(Property):
    """Edm.Decimal (read back as Decimal), Edm.Double and Edm.Single (floats)."""

    type_name = "Edm.Decimal"

    def __init__(
        self,
        name: str,
        value: Any = None,
        *,
        precision: Optional[int] = None,
        scale: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        self.precision = precision
        self.scale = scale
        super().__init__(name, value, **kwargs)

    @property
    def is_exact(self) -> bool:
        return self.type_name == "Edm.Decimal"

    def _to_decimal(self, value: Any) -> Decimal:
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal, str)):
            raise self._validation_error("Value is not a number")
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            raise self._validation_error("Value is not a number")
        return number

    def validate(self, value: Any) -> None:
        number = self._to_decimal(value)
        if not self.is_exact:
            return
        if not number.is_finite():
            raise self._validation_error("Value is not a finite decimal")
        sign, digits, exponent = number.as_tuple()
        if self.precision is not None and len(digits) > self.precision:
            raise self._validation_error(f"Value exceeds precision of {self.precision} digits")
        if self.scale is not None and exponent < 0 and -exponent > self.scale:
            raise self._validation_error(f"Value exceeds scale of {self.scale} digits")

    def _parse(self, value: Any) -> str:
        number = self._to_decimal(value)
        return str(number) if self.is_exact else repr(float(number))

    def _typecast(self, raw: str) -> Any:
        return Decimal(raw) if self.is_exact else float(raw)

    def _empty(self) -> Any:
        return Decimal("0") if self.is_exact else 0.0

    def _json(self, value: Any) -> float:
        return float(value)


class GuidProperty(Property):
    type_name = "Edm.Guid"

    def validate(self, value: Any) -> None:
        if isinstance(value, uuid.UUID):
            return
        if not isinstance(value, str) or not GUID_RE.match(value):
            raise self._validation_error("Value is not a valid GUID")

    def _parse(self, value: Any) -> str:
        return str(value)


class DateTimeProperty(Property):
    """Edm.DateTime, Edm.DateTimeOffset and Edm.Date."""

    type_name = "Edm.DateTimeOffset"

    def _coerce(self, value: Any) -> Any:
        if isinstance(value, str):
            try:
                value = parse_iso_datetime(value.strip())
            except ValueError:
                raise self._validation_error("Value is not an ISO-8601 date/time")
        if self.type_name == "Edm.Date":
            if isinstance(value, dt.datetime):
                return value.date()
            if isinstance(value, dt.date):
                return value
        elif isinstance(value, dt.datetime):
            return value
        elif isinstance(value, dt.date):
            return dt.datetime(value.year, value.month, value.day)
        raise self._validation_error("Value is not a date/time")

    def validate(self, value: Any) -> None:
        self._coerce(value)

    def _parse(self, value: Any) -> str:
        value = self._coerce(value)
        if self.type_name == "Edm.DateTimeOffset" and value.tzinfo is None:
            value = value.replace(tzinfo=dt.timezone.utc)
        return value.isoformat()

    def _typecast(self, raw: str) -> Any:
        if self.type_name == "Edm.Date":
            return dt.date.fromisoformat(raw)
        return dt.datetime.fromisoformat(raw)

    def _url_literal(self, value: Any) -> str:
        if self.type_name == "Edm.DateTime":
            return f"datetime'{self._parse(value)}'"
        return self._parse(value)

    def _json(self, value: Any) -> str:
        return self._parse(value)


class TimeProperty(Property):
    """
    Wall-clock time without a date (Edm.Time, Edm.TimeOfDay).

    Stored as ``HH:MM:SS+HH:MM``. Naive values are taken as UTC, and
    values always read back timezone-aware, so ``dt.time(8, 0)`` reads
    back as ``dt.time(8, 0, tzinfo=UTC)``.

    Neither wire form carries an offset. Values are converted to UTC
    and rendered per tag:

    - ``Edm.TimeOfDay`` (V4): ``13:45:00``, bare in URLs
    - ``Edm.Time`` (V2): a duration, ``PT13H45M00S``, and
      ``time'PT13H45M00S'`` in URLs
    """

    type_name = "Edm.Time"
    FORMAT = "%H:%M:%S%z"

    def validate(self, value: Any) -> None:
        if not isinstance(value, (dt.time, dt.datetime)):
            raise self._validation_error("Value is not a time object")

    def _parse(self, value: Any) -> str:
        if isinstance(value, dt.datetime):
            value = value.timetz()
        if value.tzinfo is None:
            value = value.replace(tzinfo=dt.timezone.utc)
        return f"{value.strftime('%H:%M:%S')}{_utc_offset(value)}"

    def _from_wire(self, value: Any) -> str:
        if isinstance(value, str):
            value = self._parse_text(value.strip())
        return super()._from_wire(value)

    def _parse_text(self, text: str) -> dt.time:
        m = DURATION_RE.match(text)
        if m and text != "PT":
            hours, minutes, seconds = (int(g or 0) for g in m.groups())
            return dt.time(hours, minutes, seconds, tzinfo=dt.timezone.utc)
        m = TIME_RE.match(text)
        if not m:
            raise self._validation_error("Value is not a time object")
        offset = m.group(4) or "+00:00"
        if offset == "Z":
            offset = "+00:00"
        elif ":" not in offset:
            offset = f"{offset[:3]}:{offset[3:]}"
        stamp = f"{m.group(1)}:{m.group(2)}:{m.group(3) or '00'}{offset}"
        try:
            return dt.datetime.strptime(stamp, self.FORMAT).timetz()
        except ValueError:
            raise self._validation_error("Value is not a time object")

    def _typecast(self, raw: str) -> dt.time:
        return dt.datetime.strptime(raw, self.FORMAT).timetz()

    @staticmethod
    def _utc_wall_clock(value: dt.time) -> dt.time:
        stamp = dt.datetime.combine(dt.date(2000, 1, 1), value)
        return stamp.astimezone(dt.timezone.utc).time()

    def _url_literal(self, value: dt.time) -> str:
        text = self._json(value)
        return f"time'{text}'" if self.type_name == "Edm.Time" else text

    def _json(self, value: dt.time) -> str:
        t = self._utc_wall_clock(value)
        if self.type_name == "Edm.Time":
            return f"PT{t.hour:02d}H{t.minute:02d}M{t.second:02d}S"
        return t.strftime("%H:%M:%S")


class EnumProperty(Property):
    """Member of an EnumType declared in $metadata, stored by member name."""

    def __init__(
        self,
        name: str,
        value: Any = None,
        *,
        enum_type: EnumTypeDefinition,
        **kwargs: Any,
    ) -> None:
        self.enum_type = enum_type
        kwargs["type_name"] = enum_type.name
        super().__init__(name, value, **kwargs)

    def _member_name(self, value: Any) -> Optional[str]:
        members = self.enum_type.members
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            for member, number in members.items():
                if number == value:
                    return member
            return None
        if isinstance(value, str):
            names = [v.strip() for v in value.split(",")] if self.enum_type.is_flags else [value]
            if names and all(n in members for n in names):
                return ",".join(names)
        return None

    def validate(self, value: Any) -> None:
        if self._member_name(value) is None:
            allowed = ", ".join(self.enum_type.members)
            raise self._validation_error(f"Value is not a member of {self.type_name}: {allowed}")

    def _parse(self, value: Any) -> str:
        return self._member_name(value)

    def _url_literal(self, value: str) -> str:
        return f"{self.type_name}'{value}'"


class ComplexProperty(Property):
    """Structured value of a ComplexType; members are typed properties."""

    PRESENT = object()

    def __init__(
        self,
        name: str,
        value: Any = None,
        *,
        complex_type: ComplexTypeDefinition,
        types: Any = None,
        **kwargs: Any,
    ) -> None:
        self.complex_type = complex_type
        self.members: "OrderedDict[str, Property]" = OrderedDict(
            (p.name, build_property(p, types)) for p in complex_type.properties.values()
        )
        kwargs["type_name"] = complex_type.name
        kwargs.pop("default_value", None)
        super().__init__(name, value, **kwargs)

    def __getitem__(self, member: str) -> Property:
        try:
            return self.members[member]
        except KeyError:
            raise NotFoundError(f"{self.type_name} has no member {member!r}")

    def validate(self, value: Any) -> None:
        if not isinstance(value, Mapping):
            raise self._validation_error("Value is not a mapping")
        unknown = [k for k in value if k not in self.members and not k.startswith("@")]
        if unknown:
            raise self._validation_error(f"Unknown members for {self.type_name}: {', '.join(unknown)}")

    def _parse(self, value: Mapping[str, Any]) -> Any:
        for key, item in value.items():
            if key in self.members:
                self.members[key].set_value(item)
        return self.PRESENT

    def _from_wire(self, value: Any) -> Any:
        self.validate(value)
        for key, item in value.items():
            if key in self.members:
                self.members[key].load(item)
        return self.PRESENT

    def _typecast(self, raw: Any) -> "OrderedDict[str, Any]":
        return OrderedDict((k, p.value) for k, p in self.members.items())

    def _json(self, value: Any) -> Dict[str, Any]:
        return {k: p.json_value for k, p in self.members.items()}

    def _url_literal(self, value: Any) -> str:
        return json.dumps(self._json(value), separators=(",", ":"))


class CollectionProperty(Property):
    """``Collection(<type>)`` property; each item is validated by its own wrapper."""

    def __init__(
        self,
        name: str,
        value: Any = None,
        *,
        item_factory: Callable[[], Property],
        **kwargs: Any,
    ) -> None:
        self.item_factory = item_factory
        kwargs.pop("default_value", None)
        super().__init__(name, value, **kwargs)

    def _items(self, values: Any, wire: bool) -> List[Property]:
        if isinstance(values, (str, bytes)) or not isinstance(values, (list, tuple)):
            raise self._validation_error("Value is not a list")
        items = []
        for v in values:
            item = self.item_factory()
            if wire:
                item.load(v)
            else:
                item.set_value(v)
            items.append(item)
        return items

    def validate(self, value: Any) -> None:
        self._items(value, wire=False)

    def _parse(self, value: Any) -> List[Property]:
        return self._items(value, wire=False)

    def _from_wire(self, value: Any) -> List[Property]:
        return self._items(value, wire=True)

    def _typecast(self, raw: List[Property]) -> List[Any]:
        return [p.value for p in raw]

    def _empty(self) -> List[Any]:
        return []

    def _json(self, value: Any) -> List[Any]:
        return [p.json_value for p in self._items(value, wire=False)]

    def _url_literal(self, value: Any) -> str:
        return json.dumps(self._json(value), separators=(",", ":"))


class NavigationProperty(Property):
    """Inline payload of a navigation property, as returned by $expand."""

    def __init__(
        self,
        name: str,
        value: Any = None,
        *,
        target_type: str,
        is_collection: bool = False,
        **kwargs: Any,
    ) -> None:
        self.target_type = target_type
        self.is_collection = is_collection
        kwargs["type_name"] = f"Collection({target_type})" if is_collection else target_type
        super().__init__(name, value, **kwargs)

    def validate(self, value: Any) -> None:
        if self.is_collection:
            ok = isinstance(value, (list, tuple)) and all(isinstance(v, Mapping) for v in value)
        else:
            ok = isinstance(value, Mapping)
        if not ok:
            raise self._validation_error(f"Value is not a valid {self.type_name} payload")

    def _empty(self) -> Any:
        return [] if self.is_collection else None

    def _is_blank(self, raw: Any) -> bool:
        return raw is None

    def _url_literal(self, value: Any) -> str:
        raise TypeError(f"Navigation property {self.name!r} has no literal form")


class StreamProperty(Property):
    """Edm.Stream; never present inline, so always nullable."""

    type_name = "Edm.Stream"

    def __init__(self, name: str, value: Any = None, **kwargs: Any) -> None:
        kwargs["allows_nil"] = True
        super().__init__(name, value, **kwargs)


class UntypedProperty(Property):
    """Passthrough for primitive types without a dedicated wrapper (geo types)."""


PRIMITIVE_TYPES: Dict[str, Type[Property]] = {
    "Edm.String": StringProperty,
    "Edm.Boolean": BooleanProperty,
    "Edm.Binary": BinaryProperty,
    "Edm.Byte": IntegerProperty,
    "Edm.SByte": IntegerProperty,
    "Edm.Int16": IntegerProperty,
    "Edm.Int32": IntegerProperty,
    "Edm.Int64": IntegerProperty,
    "Edm.Decimal": DecimalProperty,
    "Edm.Double": DecimalProperty,
    "Edm.Single": DecimalProperty,
    "Edm.Guid": GuidProperty,
    "Edm.DateTime": DateTimeProperty,
    "Edm.DateTimeOffset": DateTimeProperty,
    "Edm.Date": DateTimeProperty,
    "Edm.Time": TimeProperty,
    "Edm.TimeOfDay": TimeProperty,
    "Edm.Stream": StreamProperty,
}


def build_property(
    definition: PropertyDefinition,
    types: Any = None,
    value: Any = None,
) -> Property:
    """
    Create the typed wrapper for a property definition.

    Parameters
    ----------
    definition : PropertyDefinition
        Definition parsed from $metadata
    types : TypeRegistry, optional
        Registry used to resolve enum and complex type references
    value : any, optional
        Initial value

    Raises
    ------
    NotFoundError
        If the type is neither a primitive nor a registered enum/complex type
    """
    type_name = definition.type_name
    options: Dict[str, Any] = {
        "allows_nil": definition.nullable,
        "default_value": definition.default_value,
        "type_name": type_name,
    }

    if type_name.startswith("Collection(") and type_name.endswith(")"):
        item = replace(definition, type_name=type_name[len("Collection("):-1], default_value=None)
        return CollectionProperty(
            definition.name,
            value,
            item_factory=lambda: build_property(item, types),
            **options,
        )

    cls = PRIMITIVE_TYPES.get(type_name)
    if cls is not None:
        return cls(definition.name, value, **options, **definition.facets())
    if type_name.startswith("Edm."):
        return UntypedProperty(definition.name, value, **options)

    if types is None:
        raise NotFoundError(f"Cannot resolve type {type_name!r} without a type registry")
    ref = types[type_name]
    options.pop("type_name")
    if isinstance(ref, EnumTypeDefinition):
        return EnumProperty(definition.name, value, enum_type=ref, **options)
    if isinstance(ref, ComplexTypeDefinition):
        return ComplexProperty(definition.name, value, complex_type=ref, types=types, **options)
    raise NotFoundError(f"{type_name!r} is not an enum or complex type")


def build_navigation(definition: NavigationPropertyDefinition, value: Any = None) -> NavigationProperty:
    return NavigationProperty(
        definition.name,
        value,
        target_type=definition.target_type,
        is_collection=definition.is_collection,
    )
