# Copyright (c) 2021 Leiden University Medical Center
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
"""Typed tag values as configured in a TagFilter."""
import enum
import math
import struct
from typing import ClassVar, Union

from pydantic import Field, field_validator

from ._abstracts import FrozenModel
from .errors import ConversionError

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

TAG_NAME_PATTERN = r"^[\x00-\x7f]{2}$"


def to_float32(value: float) -> float:
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except (OverflowError, struct.error) as error:
        raise ValueError(
            f"{value!r} can not be represented as a 32-bit float.") from error


class _TagValue(FrozenModel):
    """
    A configured tag value, serialized as a single key object such as
    ``{"Int": 0}``.

    ``type_code`` is the BAM type code a record value must carry to be
    equal.
    """
    type_code: ClassVar[str]

    def equals(self, value, type_code: str) -> bool:
        """
        Compare with a value as returned by
        ``AlignedSegment.get_tag(tag, with_value_type=True)``.

        Both the BAM type code and the value must be equal.
        """
        return type_code == self.type_code and value == self.value


class CharValue(_TagValue):
    type_code: ClassVar[str] = "A"
    value: int = Field(alias="Char", ge=0, le=255, strict=True)

    def equals(self, value, type_code: str) -> bool:
        return type_code == self.type_code and isinstance(value, str) and \
            len(value) == 1 and ord(value) == self.value


# Integers are compared as the signed 32-bit encoding only. A record that
# stores the same number with another width does not match.
class IntValue(_TagValue):
    type_code: ClassVar[str] = "i"
    value: int = Field(alias="Int", ge=INT64_MIN, le=INT64_MAX,
                       strict=True)


class FloatValue(_TagValue):
    type_code: ClassVar[str] = "f"
    value: float = Field(alias="Float", allow_inf_nan=False, strict=True)

    @field_validator("value")
    @classmethod
    def single_precision(cls, value: float) -> float:
        return to_float32(value)

    def equals(self, value, type_code: str) -> bool:
        return type_code == self.type_code and isinstance(value, float) and \
            to_float32(value) == self.value


class StringValue(_TagValue):
    type_code: ClassVar[str] = "Z"
    value: str = Field(alias="String", strict=True)


TagValue = Union[CharValue, IntValue, FloatValue, StringValue]


class TagType(enum.Enum):
    CHAR = "Char"
    INT = "Int"
    FLOAT = "Float"
    STRING = "String"


_VALUE_TYPES = {
    TagType.CHAR: CharValue,
    TagType.INT: IntValue,
    TagType.FLOAT: FloatValue,
    TagType.STRING: StringValue,
}


def _parse_char(literal: str) -> int:
    if len(literal) == 1 and not literal.isdigit():
        return ord(literal)
    return int(literal)


def _parse_float(literal: str) -> float:
    value = float(literal)
    if not math.isfinite(value):
        raise ValueError("Float tag values must be finite.")
    return value


_LITERAL_PARSERS = {
    TagType.CHAR: _parse_char,
    TagType.INT: int,
    TagType.FLOAT: _parse_float,
    TagType.STRING: str,
}


def convert_tag_value(tag_type: str, literal: str) -> TagValue:
    """
    Parse a command line literal into a tag value of the declared type.

    ``tag_type`` is one of char, int, float or string (case insensitive).
    Chars are given either as a single non-digit character or as a byte
    number.
    """
    try:
        declared = TagType(tag_type.capitalize())
    except ValueError:
        raise ConversionError(f"Unknown tag type: {tag_type}.")
    try:
        return _VALUE_TYPES[declared](
            value=_LITERAL_PARSERS[declared](literal))
    except ValueError as error:
        raise ConversionError(
            f"Invalid data for {declared.value}: {literal!r}.") from error
