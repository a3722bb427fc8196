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
import enum
from typing import Annotated, Literal, Union

from pydantic import Field, field_validator
from pysam import AlignedSegment

from ._abstracts import Filter, opposite
from ._tags import INT64_MAX, INT64_MIN, TAG_NAME_PATTERN, TagValue

UINT32_MAX = 2 ** 32 - 1
INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

_COMPLEMENT = str.maketrans("ACGTNacgtn", "TGCANtgcan")


class BoolOperator(enum.Enum):
    AND = "AND"
    OR = "OR"
    XOR = "XOR"
    XNOR = "XNOR"
    NAND = "NAND"
    NOR = "NOR"
    IMPLIES = "IMPLIES"

    def combine(self, result1: bool, result2: bool) -> bool:
        return _OPERATIONS[self](result1, result2)


_OPERATIONS = {
    BoolOperator.AND: lambda a, b: a and b,
    BoolOperator.OR: lambda a, b: a or b,
    BoolOperator.XOR: lambda a, b: a != b,
    BoolOperator.XNOR: lambda a, b: a == b,
    BoolOperator.NAND: lambda a, b: not (a and b),
    BoolOperator.NOR: lambda a, b: not (a or b),
    BoolOperator.IMPLIES: lambda a, b: (not a) or b,
}


class LengthFilter(Filter):
    """
    Pass reads with ``min_len <= query length <= max_len``.

    ``min_len <= max_len`` is not checked. An inverted range passes nothing.
    """
    type: Literal["Length"] = Field("Length", repr=False)
    min_len: int = Field(ge=0, le=UINT32_MAX, strict=True)
    max_len: int = Field(ge=0, le=UINT32_MAX, strict=True)
    opposite: bool = Field(False, strict=True)

    def apply_to(self, record: AlignedSegment) -> bool:
        return opposite(
            self.min_len <= record.query_length <= self.max_len,
            self.opposite)


class MapqFilter(Filter):
    """Pass reads with ``min_mapq <= mapping quality <= max_mapq``."""
    type: Literal["Mapq"] = Field("Mapq", repr=False)
    min_mapq: int = Field(ge=0, le=255, strict=True)
    max_mapq: int = Field(ge=0, le=255, strict=True)
    opposite: bool = Field(False, strict=True)

    def apply_to(self, record: AlignedSegment) -> bool:
        return opposite(
            self.min_mapq <= record.mapping_quality <= self.max_mapq,
            self.opposite)


class RefNameFilter(Filter):
    """Pass reads aligned to the reference with id ``ref_id``."""
    type: Literal["RefName"] = Field("RefName", repr=False)
    ref_id: int = Field(ge=INT32_MIN, le=INT32_MAX, strict=True)
    opposite: bool = Field(False, strict=True)

    def apply_to(self, record: AlignedSegment) -> bool:
        return opposite(record.reference_id == self.ref_id, self.opposite)


class FlagFilter(Filter):
    """Remove reads that have any of the bits in ``remove_flags`` set."""
    type: Literal["Flag"] = Field("Flag", repr=False)
    remove_flags: int = Field(ge=0, le=0xFFFF, strict=True)
    opposite: bool = Field(False, strict=True)

    def apply_to(self, record: AlignedSegment) -> bool:
        return opposite(record.flag & self.remove_flags == 0, self.opposite)


class TagFilter(Filter):
    """
    Pass reads carrying ``tag_name`` with a value equal to ``tag_value``.

    Equality is strict: the BAM type code of the stored value must match
    the configured type as well. Reads without the tag fail.
    """
    type: Literal["Tag"] = Field("Tag", repr=False)
    tag_name: str = Field(pattern=TAG_NAME_PATTERN, strict=True)
    tag_value: TagValue
    opposite: bool = Field(False, strict=True)

    def apply_to(self, record: AlignedSegment) -> bool:
        try:
            value, type_code = record.get_tag(self.tag_name,
                                              with_value_type=True)
        except KeyError:
            return opposite(False, self.opposite)
        return opposite(self.tag_value.equals(value, type_code),
                        self.opposite)


class NthNucleotideFilter(Filter):
    """
    Pass reads that have ``nucleotide`` at ``position``.

    Positions are 1-based and counted from the 5' end of the sequenced
    molecule. Negative positions count from the 3' end, so -1 is the last
    base. For reads aligned to the reverse strand the stored sequence is
    reverse complemented, which is undone before comparing.
    """
    type: Literal["NthNucleotide"] = Field("NthNucleotide", repr=False)
    position: int = Field(ge=INT64_MIN, le=INT64_MAX, strict=True)
    nucleotide: Literal["A", "C", "G", "T", "N"]
    n_is_wildcard: bool = Field(False, strict=True)
    opposite: bool = Field(False, strict=True)

    @field_validator("position")
    @classmethod
    def non_zero(cls, position: int) -> int:
        if position == 0:
            raise ValueError("Position must not be 0. Use 1 for the first "
                             "base and -1 for the last.")
        return position

    def nucleotide_at(self, record: AlignedSegment):
        """
        Return the base at ``position`` of the original molecule, or None
        when the position is out of range or the sequence is unavailable.
        """
        sequence = record.query_sequence
        length = record.query_length
        if self.position == 0 or abs(self.position) > length or \
                sequence is None:
            return None
        if self.position > 0:
            index = self.position - 1
        else:
            index = length + self.position
        if record.is_reverse:
            return sequence[length - index - 1].translate(_COMPLEMENT)
        return sequence[index]

    def apply_to(self, record: AlignedSegment) -> bool:
        base = self.nucleotide_at(record)
        if base is None:
            return opposite(False, self.opposite)
        if self.n_is_wildcard and base == "N":
            return opposite(True, self.opposite)
        return opposite(base == self.nucleotide, self.opposite)


class CombinedFilter(Filter):
    """
    Combine the results of two filters with a boolean operator.

    The sub-filters are embedded copies, not references to catalog
    entries. ``opposite`` is kept as a label only; the operator alone
    decides the result.
    """
    type: Literal["Combined"] = Field("Combined", repr=False)
    filter1: "FilterValue"
    filter2: "FilterValue"
    # Operators are also given by name, e.g. "AND".
    operator: BoolOperator
    opposite: bool = Field(False, strict=True)

    def apply_to(self, record: AlignedSegment) -> bool:
        result1 = self.filter1.apply_to(record)
        result2 = self.filter2.apply_to(record)
        return self.operator.combine(result1, result2)


FilterValue = Annotated[
    Union[
        LengthFilter,
        MapqFilter,
        RefNameFilter,
        TagFilter,
        NthNucleotideFilter,
        FlagFilter,
        CombinedFilter,
    ],
    Field(discriminator="type"),
]

CombinedFilter.model_rebuild()
