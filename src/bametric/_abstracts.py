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
from abc import ABC, abstractmethod

import pydantic
from pydantic import BaseModel, ConfigDict, Field
from pysam import AlignedSegment

from .errors import ValidationError


def opposite(boolean: bool, invert: bool) -> bool:
    """Return ``boolean``, negated when ``invert`` is set."""
    return not boolean if invert else boolean


class FrozenModel(BaseModel):
    """
    Immutable model that rejects unknown fields.

    Invalid fields given to the constructor raise bametric's
    ValidationError. Decoding goes through pydantic validation directly and
    is handled by the serialization module.
    """
    model_config = ConfigDict(frozen=True, extra="forbid",
                              populate_by_name=True)

    def __init__(self, **data):
        try:
            super().__init__(**data)
        except pydantic.ValidationError as error:
            raise ValidationError(
                f"Invalid {type(self).__name__}: {error}") from error


class Filter(FrozenModel, ABC):
    """
    A named predicate over a single alignment record.

    Every concrete filter has a literal ``type`` field which is used as
    discriminator when the filter is serialized.
    """
    name: str = Field(min_length=1, strict=True)

    @abstractmethod
    def apply_to(self, record: AlignedSegment) -> bool:
        """Return True if the record passes the filter."""

    def __call__(self, record: AlignedSegment) -> bool:
        return self.apply_to(record)
